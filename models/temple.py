from models.db import db, utcnow

class Temple(db.Model):
    __tablename__ = "temples"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    address = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="active")
    # status values: active, inactive

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    services = db.relationship("TempleService", back_populates="temple", lazy="select")


class TempleService(db.Model):
    __tablename__ = "temple_services"

    id = db.Column(db.Integer, primary_key=True)
    temple_id = db.Column(db.Integer, db.ForeignKey("temples.id"), nullable=False, index=True)

    name = db.Column(db.String(160), nullable=False)
    price = db.Column(db.Integer, nullable=False, default=0)  # smallest unit (paise)
    duration = db.Column(db.Integer, nullable=False)  # minutes

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    temple = db.relationship("Temple", back_populates="services")

    __table_args__ = (
        db.CheckConstraint("duration > 0", name="ck_temple_service_duration_positive"),
    )
