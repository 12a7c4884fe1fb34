"""
ABO/Rh red cell compatibility, donor unit group -> recipient groups.
"""
from typing import List

from models import BloodGroup

DONOR_TO_RECIPIENTS = {
    BloodGroup.O_NEGATIVE: frozenset(BloodGroup),
    BloodGroup.O_POSITIVE: frozenset({
        BloodGroup.O_POSITIVE, BloodGroup.A_POSITIVE, BloodGroup.B_POSITIVE, BloodGroup.AB_POSITIVE,
    }),
    BloodGroup.A_NEGATIVE: frozenset({
        BloodGroup.A_NEGATIVE, BloodGroup.A_POSITIVE, BloodGroup.AB_NEGATIVE, BloodGroup.AB_POSITIVE,
    }),
    BloodGroup.A_POSITIVE: frozenset({BloodGroup.A_POSITIVE, BloodGroup.AB_POSITIVE}),
    BloodGroup.B_NEGATIVE: frozenset({
        BloodGroup.B_NEGATIVE, BloodGroup.B_POSITIVE, BloodGroup.AB_NEGATIVE, BloodGroup.AB_POSITIVE,
    }),
    BloodGroup.B_POSITIVE: frozenset({BloodGroup.B_POSITIVE, BloodGroup.AB_POSITIVE}),
    BloodGroup.AB_NEGATIVE: frozenset({BloodGroup.AB_NEGATIVE, BloodGroup.AB_POSITIVE}),
    BloodGroup.AB_POSITIVE: frozenset({BloodGroup.AB_POSITIVE}),
}


def is_compatible(donor: BloodGroup, recipient: BloodGroup) -> bool:
    return BloodGroup(recipient) in DONOR_TO_RECIPIENTS[BloodGroup(donor)]


def compatible_donor_groups(recipient: BloodGroup) -> List[BloodGroup]:
    """Donor groups a recipient may receive, the recipient's own group first."""
    recipient = BloodGroup(recipient)
    others = [group for group in BloodGroup if group != recipient and is_compatible(group, recipient)]
    return [recipient] + others
