# backend/utils/audit.py
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.log import Log

logger = logging.getLogger(__name__)


def write_log(db: Session, *, operator, action, resource, resource_id=None, status="SUCCESS", ip=None, meta=None):
    entry = Log(
        operator=operator, action=action, resource=resource, resource_id=resource_id,
        status=status, ip=ip, meta=meta or {},
    )
    db.add(entry)
    try:
        db.commit()
    except SQLAlchemyError as e:
        # The audited change is already committed; a lost audit row must not undo it
        db.rollback()
        logger.exception("Failed to write audit log %s/%s: %s", resource, action, e)
