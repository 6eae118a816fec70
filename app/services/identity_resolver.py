"""
Works out which user a Dodo subscription belongs to.

Two directions share one set of rules:

* owner lookup (webhooks): one subscription in, the owning user id out.
  Order: known linkage, metadata claim, client_reference_id claim, email.
* subscription lookup (sync): a user id and the provider's subscription list
  in, the subscription to link out. Order: metadata, client_reference_id,
  known linkage, email, unlinked fallback.

Each strategy is a pure function over an IdentitySnapshot (profiles already
linked to the subscriptions involved, and the auth identities involved); it
returns a Resolution or None to pass to the next one. IdentityResolver only
loads the snapshot and runs the chain.

Cancelled subscriptions never match, except through known linkage, which is
status-agnostic so that a cancellation carried on an update still reaches
the linked profile.
"""
import logging
from typing import Callable, NamedTuple, Optional, Sequence

from app.schemas.dodo import ProviderSubscription, normalize_email
from app.services.profile_store import IdentityDirectory, ProfileStore

logger = logging.getLogger(__name__)

MATCH_METADATA = "metadata"
MATCH_CLIENT_REFERENCE = "client_reference_id"
MATCH_SUBSCRIPTION_ID = "subscription_id"
MATCH_EMAIL = "email"
MATCH_UNLINKED = "unlinked"


class IdentitySnapshot(NamedTuple):
    # subscription id -> user ids of profiles linked to it
    linked: dict[str, list[str]]
    # user id -> normalised registered email ('' when the user has none)
    identities: dict[str, str]


class Resolution(NamedTuple):
    user_id: str
    subscription: ProviderSubscription
    method: str


OwnerStrategy = Callable[[ProviderSubscription, IdentitySnapshot], Optional[Resolution]]
SubscriptionStrategy = Callable[[str, Sequence[ProviderSubscription], IdentitySnapshot], Optional[Resolution]]


# --- owner lookup: subscription -> user ---

def owner_by_known_linkage(sub: ProviderSubscription, snapshot: IdentitySnapshot) -> Optional[Resolution]:
    owners = snapshot.linked.get(sub.subscription_id or "", [])
    if len(owners) == 1:
        return Resolution(owners[0], sub, MATCH_SUBSCRIPTION_ID)
    if len(owners) > 1:
        # Two profiles claim one subscription; refuse to guess
        logger.error(
            "[Resolver] Subscription %s is linked to %s profiles (%s); skipping linkage match",
            sub.subscription_id, len(owners), owners,
        )
    return None


def _claimed_owner(claim: Optional[str], sub: ProviderSubscription, snapshot: IdentitySnapshot, method: str) -> Optional[Resolution]:
    if not claim or sub.is_cancelled:
        return None
    if claim not in snapshot.identities:
        logger.warning("[Resolver] %s claims user %s, which does not exist", method, claim)
        return None
    return Resolution(claim, sub, method)


def owner_by_metadata(sub: ProviderSubscription, snapshot: IdentitySnapshot) -> Optional[Resolution]:
    return _claimed_owner(sub.metadata_user_id, sub, snapshot, MATCH_METADATA)


def owner_by_client_reference(sub: ProviderSubscription, snapshot: IdentitySnapshot) -> Optional[Resolution]:
    return _claimed_owner(sub.client_reference_id, sub, snapshot, MATCH_CLIENT_REFERENCE)


def owner_by_email(sub: ProviderSubscription, snapshot: IdentitySnapshot) -> Optional[Resolution]:
    email = normalize_email(sub.customer_email)
    if not email or sub.is_cancelled:
        return None
    owners = sorted(uid for uid, known in snapshot.identities.items() if known == email)
    if len(owners) == 1:
        return Resolution(owners[0], sub, MATCH_EMAIL)
    if len(owners) > 1:
        logger.warning("[Resolver] Email %s belongs to %s users; not matching by email", email, len(owners))
    return None


OWNER_STRATEGIES: tuple[OwnerStrategy, ...] = (
    owner_by_known_linkage,
    owner_by_metadata,
    owner_by_client_reference,
    owner_by_email,
)


def resolve_owner(
    sub: ProviderSubscription,
    snapshot: IdentitySnapshot,
    strategies: Sequence[OwnerStrategy] = OWNER_STRATEGIES,
) -> Optional[Resolution]:
    for strategy in strategies:
        match = strategy(sub, snapshot)
        if match:
            return match
    return None


# --- subscription lookup: user -> subscription ---

def _claimed_by_other(sub: ProviderSubscription, user_id: str, snapshot: IdentitySnapshot) -> bool:
    owners = snapshot.linked.get(sub.subscription_id or "", [])
    return any(owner != user_id for owner in owners)


def _keyed_to_other(sub: ProviderSubscription, user_id: str) -> bool:
    """True when checkout correlation keys name somebody else."""
    return any(key and key != user_id for key in (sub.metadata_user_id, sub.client_reference_id))


def subscription_by_metadata(user_id: str, subs: Sequence[ProviderSubscription], snapshot: IdentitySnapshot) -> Optional[Resolution]:
    for sub in subs:
        if sub.metadata_user_id == user_id and not sub.is_cancelled:
            return Resolution(user_id, sub, MATCH_METADATA)
    return None


def subscription_by_client_reference(user_id: str, subs: Sequence[ProviderSubscription], snapshot: IdentitySnapshot) -> Optional[Resolution]:
    for sub in subs:
        if sub.client_reference_id == user_id and not sub.is_cancelled:
            return Resolution(user_id, sub, MATCH_CLIENT_REFERENCE)
    return None


def subscription_by_known_linkage(user_id: str, subs: Sequence[ProviderSubscription], snapshot: IdentitySnapshot) -> Optional[Resolution]:
    for sub in subs:
        # A stale cancelled link must not hide a newer active subscription
        if sub.is_cancelled:
            continue
        if user_id in snapshot.linked.get(sub.subscription_id or "", []):
            return Resolution(user_id, sub, MATCH_SUBSCRIPTION_ID)
    return None


def subscription_by_email(user_id: str, subs: Sequence[ProviderSubscription], snapshot: IdentitySnapshot) -> Optional[Resolution]:
    email = snapshot.identities.get(user_id, "")
    if not email:
        return None
    for sub in subs:
        if sub.is_cancelled or normalize_email(sub.customer_email) != email:
            continue
        if _claimed_by_other(sub, user_id, snapshot) or _keyed_to_other(sub, user_id):
            continue
        return Resolution(user_id, sub, MATCH_EMAIL)
    return None


def subscription_by_unlinked_fallback(user_id: str, subs: Sequence[ProviderSubscription], snapshot: IdentitySnapshot) -> Optional[Resolution]:
    # Provider order is assumed newest-first, so the first unclaimed one wins.
    # Best effort only: Dodo does not document list ordering.
    for sub in subs:
        if sub.is_cancelled or not sub.subscription_id:
            continue
        if snapshot.linked.get(sub.subscription_id):
            continue
        if _keyed_to_other(sub, user_id):
            continue
        return Resolution(user_id, sub, MATCH_UNLINKED)
    return None


SUBSCRIPTION_STRATEGIES: tuple[SubscriptionStrategy, ...] = (
    subscription_by_metadata,
    subscription_by_client_reference,
    subscription_by_known_linkage,
    subscription_by_email,
    subscription_by_unlinked_fallback,
)


def resolve_subscription(
    user_id: str,
    subs: Sequence[ProviderSubscription],
    snapshot: IdentitySnapshot,
    strategies: Sequence[SubscriptionStrategy] = SUBSCRIPTION_STRATEGIES,
) -> Optional[Resolution]:
    for strategy in strategies:
        match = strategy(user_id, subs, snapshot)
        if match:
            return match
    return None


class IdentityResolver:
    def __init__(self, store: ProfileStore, directory: IdentityDirectory):
        self.store = store
        self.directory = directory

    def owner_snapshot(self, sub: ProviderSubscription) -> IdentitySnapshot:
        identities = self.directory.emails_for([sub.metadata_user_id, sub.client_reference_id])
        identities.update(self.directory.find_by_email(sub.customer_email))
        return IdentitySnapshot(
            linked=self.store.linkage_map([sub.subscription_id]),
            identities=identities,
        )

    def subscription_snapshot(self, user_id: str, subs: Sequence[ProviderSubscription]) -> IdentitySnapshot:
        return IdentitySnapshot(
            linked=self.store.linkage_map(sub.subscription_id for sub in subs),
            identities=self.directory.emails_for([user_id]),
        )

    def find_owner(self, sub: ProviderSubscription) -> Optional[Resolution]:
        match = resolve_owner(sub, self.owner_snapshot(sub))
        if match:
            logger.info(
                "[Resolver] Subscription %s belongs to user %s (matched by %s)",
                sub.subscription_id, match.user_id, match.method,
            )
        else:
            logger.warning("[Resolver] No owner found for subscription %s", sub.subscription_id)
        return match

    def find_subscription(self, user_id: str, subs: Sequence[ProviderSubscription]) -> Optional[Resolution]:
        match = resolve_subscription(user_id, subs, self.subscription_snapshot(user_id, subs))
        if match:
            logger.info(
                "[Resolver] User %s matched subscription %s by %s",
                user_id, match.subscription.subscription_id, match.method,
            )
        else:
            logger.info("[Resolver] No active subscription among %s for user %s", len(subs), user_id)
        return match
