from typing import Dict, List, Optional, Set

from contact_repository import ContactRepository
from db_models import ClusterOutcome, Contact, LinkPrecedence
from errors import ConstraintViolation, InvalidInput
from logging_config import get_logger

logger = get_logger(__name__)


class IdentityResolver:
    """
    Decides how a new (email, phoneNumber) observation joins the contact graph.

    Clusters are stars: one primary and secondaries that link straight to it.
    An observation either starts a new cluster, adds a secondary to the one
    cluster it matches, or merges every cluster it matches into the oldest one.
    All calls go through a repository bound to a single transaction.
    """

    def __init__(self, repository: ContactRepository):
        self.repository = repository

    def resolve(self, email: Optional[str] = None, phone_number: Optional[str] = None) -> ClusterOutcome:
        email = email or None
        phone_number = phone_number or None
        if email is None and phone_number is None:
            raise InvalidInput()

        matched = self.repository.find_by_email_or_phone(email, phone_number)

        if not matched:
            primary = self.repository.insert(email, phone_number, LinkPrecedence.PRIMARY)
            logger.info("contact.created", contact_id=primary.id, link_precedence="primary")
            return ClusterOutcome(primary=primary, secondaries=[])

        root_ids = self._root_ids(matched)
        members = self.repository.find_cluster_members(root_ids)
        roots = self._roots(root_ids, members)

        winner = min(roots, key=lambda c: (c.createdAt, c.id))
        losers = [root for root in roots if root.id != winner.id]
        if losers:
            self._merge(winner, losers, members)

        if not any(member.has_pair(email, phone_number) for member in members):
            secondary = self.repository.insert(
                email, phone_number, LinkPrecedence.SECONDARY, linked_id=winner.id
            )
            logger.info(
                "contact.created",
                contact_id=secondary.id,
                link_precedence="secondary",
                linked_id=winner.id,
            )

        return self._cluster(winner.id)

    def _root_ids(self, matched: List[Contact]) -> Set[int]:
        root_ids = set()
        for contact in matched:
            if contact.root_id is None:
                raise ConstraintViolation(f"secondary contact {contact.id} has no linkedId")
            root_ids.add(contact.root_id)
        return root_ids

    def _roots(self, root_ids: Set[int], members: List[Contact]) -> List[Contact]:
        by_id: Dict[int, Contact] = {member.id: member for member in members}
        roots = []
        for root_id in sorted(root_ids):
            root = by_id.get(root_id)
            if root is None:
                raise ConstraintViolation(f"linked contact {root_id} does not exist")
            if not root.is_primary:
                raise ConstraintViolation(f"linked contact {root_id} is not a primary contact")
            roots.append(root)
        return roots

    def _merge(self, winner: Contact, losers: List[Contact], members: List[Contact]) -> None:
        loser_ids = {loser.id for loser in losers}
        for loser in losers:
            self.repository.demote_to_secondary(loser.id, winner.id)
        relinked = []
        for member in members:
            if not member.is_primary and member.linkedId in loser_ids:
                self.repository.relink(member.id, winner.id)
                relinked.append(member.id)
        logger.info(
            "clusters.merged",
            primary_id=winner.id,
            demoted_ids=sorted(loser_ids),
            relinked_ids=relinked,
        )

    def _cluster(self, primary_id: int) -> ClusterOutcome:
        primary = None
        secondaries = []
        for contact in self.repository.find_cluster_members({primary_id}):
            if contact.id == primary_id:
                primary = contact
            else:
                secondaries.append(contact)
        if primary is None or not primary.is_primary:
            raise ConstraintViolation(f"primary contact {primary_id} vanished during reconciliation")
        secondaries.sort(key=lambda c: c.id)
        return ClusterOutcome(primary=primary, secondaries=secondaries)
