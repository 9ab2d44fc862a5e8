"""Access grant store.

Functions flush but do NOT commit; the caller commits. A duplicate
(user_id, repo_id) insert raises IntegrityError from the unique
constraint; callers decide what that means.
"""

from sqlalchemy import select

from codemarket.models.access import AccessGrant


def has_access(session, user_id, repo_id):
    """Return True if the user may retrieve the repo's content."""
    grant_id = session.scalar(
        select(AccessGrant.id)
        .where(AccessGrant.user_id == user_id, AccessGrant.repo_id == repo_id)
        .limit(1)
    )
    return grant_id is not None


def create_grant(session, user_id, repo_id, order_id=None):
    """Insert the access grant for (user_id, repo_id).

    Returns:
        The created AccessGrant.

    Raises:
        sqlalchemy.exc.IntegrityError: If the pair already has a grant.
    """
    grant = AccessGrant(user_id=user_id, repo_id=repo_id, order_id=order_id)
    session.add(grant)
    session.flush()
    return grant


def list_repo_ids_for_user(session, user_id):
    return session.scalars(
        select(AccessGrant.repo_id)
        .where(AccessGrant.user_id == user_id)
        .order_by(AccessGrant.created_at)
    ).all()
