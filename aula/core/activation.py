"""At most one active Plan / AcademicPeriod per institution."""

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def activate_exclusively(db: Session, model, institution_id: int, target) -> None:
    """
    Make `target` the only active row of `model` in the institution.

    Runs inside the caller's transaction. The sibling rows are locked first so
    two concurrent activations serialize; the partial unique index on
    (institution_id) WHERE is_active catches anything that slips past on
    databases without row locks.
    """
    db.execute(
        select(model.id).where(model.institution_id == institution_id).with_for_update()
    ).all()

    # others must be switched off before the target is flagged, otherwise
    # autoflush would write two active rows
    db.execute(
        update(model)
        .where(
            model.institution_id == institution_id,
            model.id != target.id,
            model.is_active.is_(True),
        )
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    )
    target.is_active = True
    db.flush()
    logger.info("%s %s is now the active row for institution %s", model.__name__, target.id, institution_id)
