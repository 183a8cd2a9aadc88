"""
Project Delivery Platform
Blueprint registry and shared blueprint helpers.
"""

import logging

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    ConcurrentConflictError,
    ConflictError,
    ExternalServiceError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def json_body():
    """Request JSON as a dict; anything else becomes an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def query_limit(default=50, max_limit=200):
    """``?limit=`` clamped to 1..max_limit."""
    try:
        limit = int(request.args.get("limit", default))
    except (ValueError, TypeError):
        limit = default
    return max(1, min(limit, max_limit))


def register_error_handlers(bp):
    """Map service-layer exceptions to JSON responses on *bp*.

    Every handler rolls the session back first; services may have flushed
    before raising.
    """

    @bp.errorhandler(NotFoundError)
    def _not_found(error):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _validation(error):
        db.session.rollback()
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @bp.errorhandler(PermissionDeniedError)
    def _forbidden(error):
        db.session.rollback()
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(InvalidTransitionError)
    def _invalid_transition(error):
        db.session.rollback()
        return api_error(E.CONFLICT_STATE, str(error), details={
            "current_status": error.current_status,
            "target_status": error.target_status,
        })

    @bp.errorhandler(ConcurrentConflictError)
    def _concurrent(error):
        db.session.rollback()
        return api_error(E.CONFLICT_CONCURRENT, str(error), details={
            "expected_status": error.expected_status,
        })

    @bp.errorhandler(ConflictError)
    def _conflict(error):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(ExternalServiceError)
    def _upstream(error):
        db.session.rollback()
        logger.warning("Upstream %s failed on %s: %s", error.service, request.endpoint, error)
        return api_error(E.AI_UNAVAILABLE, str(error))

    @bp.errorhandler(SQLAlchemyError)
    def _database(error):
        db.session.rollback()
        logger.exception("Database error in %s", request.endpoint)
        return api_error(E.DATABASE, "Database error")

    return bp
