import logging
from typing import Optional
from sqlalchemy.orm import Session


class BaseService:
    """
    Shared plumbing for domain services: the session and the tenant scope.
    company_id is passed in explicitly; services never read it from ambient state.
    """

    def __init__(self, db: Session, company_id: Optional[int] = None):
        self.db = db
        self.company_id = company_id
        self._logger = logging.getLogger(self.__class__.__module__)

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra or None)

    def log_error(self, message: str, **extra):
        self._logger.error(message, extra=extra or None)

    def commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
