from models.db import db, utcnow

BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled")


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    temple_id = db.Column(db.Integer, db.ForeignKey("temples.id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("temple_services.id"), nullable=False)

    date = db.Column(db.Date, nullable=False)
    time = db.Column(db.Time, nullable=False)
    # copied from the service when the booking is made, never re-read
    duration = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    temple = db.relationship("Temple")
    service = db.relationship("TempleService")
    user = db.relationship("User")

    __table_args__ = (
        # conflict scans always filter on temple + date
        db.Index("ix_bookings_temple_date", "temple_id", "date"),
        db.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name="ck_booking_status",
        ),
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"
