"""Durable key-value storage of JSON blobs on top of the app database."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import flag_modified

from stride import db
from stride.models import StateRecord

logger = logging.getLogger(__name__)

USER_KEY = 'research_user'
USERS_KEY = 'research_users'
ASSIGNMENTS_KEY = 'research_assignments'
SUBMISSIONS_KEY = 'research_submissions'

STATE_KEYS = (USER_KEY, USERS_KEY, ASSIGNMENTS_KEY, SUBMISSIONS_KEY)


def load(key):
    """Return the value stored under ``key``, or None when nothing is stored.

    Must run inside an app context. Read errors propagate.
    """
    record = db.session.get(StateRecord, key)
    if record is None:
        return None
    return record.value


def save(key, value):
    """Store ``value`` under ``key``. Never raises: failures are logged and False returned.

    Another writer may insert the row between our read and our insert; the
    insert then fails on the primary key and is retried once as an update.
    """
    for attempt in range(2):
        try:
            _upsert(key, value)
            return True
        except IntegrityError:
            db.session.rollback()
            if attempt:
                logger.exception("Could not persist %s", key)
        except Exception:
            db.session.rollback()
            logger.exception("Could not persist %s", key)
            return False
    return False


def _upsert(key, value):
    record = db.session.get(StateRecord, key)
    if record is None:
        record = StateRecord(key=key)
        db.session.add(record)
    record.value = value
    flag_modified(record, 'value')
    db.session.commit()
