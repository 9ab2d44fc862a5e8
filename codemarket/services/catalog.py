"""Repo catalog lookups used by checkout and settlement.

Read-only: nothing here writes to repos or seller profiles.
"""

from sqlalchemy import select

from codemarket.errors import RepoNotFound, SellerUnavailable
from codemarket.models.repo import Repo
from codemarket.models.seller import SellerProfile


def get_purchasable_repo(session, repo_id):
    """Return the repo if it exists, is not deleted and is active.

    Raises:
        RepoNotFound: otherwise.
    """
    repo = session.get(Repo, repo_id)
    if repo is None or not repo.is_purchasable:
        raise RepoNotFound(repo_id=repo_id)
    return repo


def get_repo(session, repo_id):
    """Return the repo unless it is missing or soft-deleted.

    Settlement uses this instead of get_purchasable_repo(): a repo taken
    down after the buyer paid must still be delivered.
    """
    repo = session.get(Repo, repo_id)
    if repo is None or repo.deleted_at is not None:
        raise RepoNotFound(repo_id=repo_id)
    return repo


def get_payout_seller(session, repo):
    """Return the seller profile that earns revenue for `repo`.

    Raises:
        SellerUnavailable: no profile for the owner, or payouts disabled.
    """
    seller = session.scalars(
        select(SellerProfile).where(SellerProfile.user_id == repo.owner_id)
    ).first()
    if seller is None or not seller.payouts_enabled:
        raise SellerUnavailable(repo_id=repo.id, owner_id=repo.owner_id)
    return seller


def get_seller_for_user(session, user_id):
    """Return the seller profile of a user, or None."""
    return session.scalars(
        select(SellerProfile).where(SellerProfile.user_id == user_id)
    ).first()
