from typing import Iterable, List, Optional

from db_models import ClusterOutcome, ConsolidatedContact


def _first_seen(values: Iterable[Optional[str]]) -> List[str]:
    ordered: List[str] = []
    seen = set()
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def assemble(outcome: ClusterOutcome) -> ConsolidatedContact:
    """Project a resolved cluster onto the consolidated contact returned by /identify.

    The primary's email and phone number come first; secondaries follow in id order.
    """
    secondaries = sorted(outcome.secondaries, key=lambda c: c.id)
    contacts = [outcome.primary] + secondaries

    return ConsolidatedContact(
        primaryContactId=outcome.primary.id,
        emails=_first_seen(c.email for c in contacts),
        phoneNumbers=_first_seen(c.phoneNumber for c in contacts),
        secondaryContactIds=[c.id for c in secondaries],
    )
