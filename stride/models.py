from stride import db
from datetime import datetime


class StateRecord(db.Model):
    """One named JSON blob of application state (see ``stride.store``)."""
    __tablename__ = 'state_record'

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CachedResponse(db.Model):
    """A network response stored under a cache generation (see ``stride.offline``)."""
    __tablename__ = 'cached_response'
    __table_args__ = (
        db.UniqueConstraint('generation', 'method', 'url', name='uq_cached_response_request'),
    )

    id = db.Column(db.Integer, primary_key=True)
    generation = db.Column(db.String(100), nullable=False, index=True)
    method = db.Column(db.String(10), nullable=False, default='GET')
    url = db.Column(db.String(2048), nullable=False)
    status_code = db.Column(db.Integer, nullable=False)
    headers = db.Column(db.JSON, nullable=True, default=dict)
    content = db.Column(db.LargeBinary, nullable=True)
    stored_at = db.Column(db.DateTime, default=datetime.utcnow)
