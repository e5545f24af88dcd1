from typing import List, Optional, Tuple

from pingtrack import db


class Ping(db.Model):
    __tablename__ = 'pings'
    id = db.Column(db.Integer, primary_key=True)
    ip = db.Column(db.String(255), nullable=False)
    timestamp = db.Column(db.BigInteger, nullable=False)  # epoch millis
    player_count = db.Column(db.Integer, nullable=True)  # NULL marks a failed ping

    __table_args__ = (
        db.Index('ix_pings_ip_timestamp', 'ip', 'timestamp'),
    )

    def to_dict(self):
        return {
            'ip': self.ip,
            'timestamp': self.timestamp,
            'playerCount': self.player_count,
        }


class SampleStore:
    """Writes ping samples from background tasks, outside any request."""

    def __init__(self, app):
        self._app = app

    def insert_sample(self, ip: str, timestamp: int, player_count: Optional[int]) -> None:
        with self._app.app_context():
            try:
                db.session.add(Ping(ip=ip, timestamp=timestamp, player_count=player_count))
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise

    def history(self, ip: str, since: int = 0) -> List[Tuple[int, Optional[int]]]:
        rows = (
            Ping.query.filter(Ping.ip == ip, Ping.timestamp >= since)
            .order_by(Ping.timestamp.asc())
            .all()
        )
        return [(row.timestamp, row.player_count) for row in rows]

    def record(self, ip: str) -> Optional[Tuple[int, int]]:
        """Highest player count ever stored for ``ip`` and when it happened."""
        row = (
            Ping.query.filter(Ping.ip == ip, Ping.player_count.isnot(None))
            .order_by(Ping.player_count.desc(), Ping.timestamp.asc())
            .first()
        )
        return (row.timestamp, row.player_count) if row else None
