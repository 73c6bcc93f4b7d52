"""Registry of standard platform entities."""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Tuple

from erdeploy.config.logging import get_logger

logger = get_logger(__name__)

MatchType = Literal["exact", "alias"]


@dataclass(frozen=True)
class StandardEntity:
    """A standard entity the platform ships with."""

    logical_name: str
    display_name: str
    description: str
    key_attributes: Tuple[str, ...] = ()
    aliases: Tuple[str, ...] = ()
    exact_confidence: float = 1.0
    alias_confidence: float = 1.0


class StandardEntityRegistry:
    """
    Immutable lookup of standard entities.

    Records are keyed by lowercase logical name. An alias index (lowercase
    alias to logical name) is built once; when two records claim the same
    alias, the first registered keeps it.
    """

    def __init__(self, records: Iterable[StandardEntity]):
        by_name: Dict[str, StandardEntity] = {}
        aliases: Dict[str, str] = {}
        for record in records:
            key = record.logical_name.lower()
            if key in by_name:
                raise ValueError(f"Duplicate standard entity: {record.logical_name}")
            by_name[key] = record
        for key, record in by_name.items():
            for alias in record.aliases:
                alias_key = alias.lower()
                if alias_key in by_name or alias_key in aliases:
                    if aliases.get(alias_key, key) != key:
                        logger.warning(
                            f"Alias '{alias}' of {key} already maps to {aliases[alias_key]}"
                        )
                    continue
                aliases[alias_key] = key
        self._by_name: Mapping[str, StandardEntity] = MappingProxyType(by_name)
        self._aliases: Mapping[str, str] = MappingProxyType(aliases)

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None

    def get(self, logical_name: str) -> Optional[StandardEntity]:
        return self._by_name.get(logical_name.lower())

    def all(self) -> List[StandardEntity]:
        return list(self._by_name.values())

    def lookup(self, name: str) -> Optional[Tuple[StandardEntity, MatchType]]:
        """
        Find the standard entity a diagram name refers to.

        Args:
            name: Entity name as written in the diagram

        Returns:
            (record, match type) or None when the name is custom
        """
        key = name.lower()
        record = self._by_name.get(key)
        if record is not None:
            return record, "exact"
        target = self._aliases.get(key)
        if target is not None:
            return self._by_name[target], "alias"
        return None


_DEFAULT_RECORDS = (
    StandardEntity(
        logical_name="account",
        display_name="Account",
        description="Business that represents a customer or potential customer",
        key_attributes=("accountid", "name", "primarycontactid"),
        aliases=("Customer", "Company", "Organization"),
    ),
    StandardEntity(
        logical_name="contact",
        display_name="Contact",
        description="Person with whom a business unit has a relationship",
        key_attributes=("contactid", "fullname", "firstname", "lastname"),
        aliases=("Person", "Individual"),
    ),
    StandardEntity(
        logical_name="lead",
        display_name="Lead",
        description="Prospect or potential sales opportunity",
        key_attributes=("leadid", "fullname", "companyname"),
        aliases=("Prospect",),
    ),
    StandardEntity(
        logical_name="opportunity",
        display_name="Opportunity",
        description="Potential revenue-generating event or sale to an account",
        key_attributes=("opportunityid", "name", "estimatedvalue"),
        aliases=("Deal", "Sale"),
    ),
    StandardEntity(
        logical_name="product",
        display_name="Product",
        description="Information about products and their pricing",
        key_attributes=("productid", "name", "productnumber"),
        aliases=("Item", "Sku"),
    ),
    StandardEntity(
        logical_name="incident",
        display_name="Case",
        description="Service request case associated with a contract",
        key_attributes=("incidentid", "title", "ticketnumber"),
        aliases=("Case", "Ticket", "SupportCase"),
    ),
    StandardEntity(
        logical_name="task",
        display_name="Task",
        description="Generic activity representing work to be done",
        key_attributes=("activityid", "subject", "scheduledend"),
        aliases=("Todo", "Activity"),
    ),
    StandardEntity(
        logical_name="invoice",
        display_name="Invoice",
        description="Order that has been billed",
        key_attributes=("invoiceid", "name", "totalamount"),
        aliases=("Bill",),
    ),
)

_default: Optional[StandardEntityRegistry] = None


def default_registry() -> StandardEntityRegistry:
    """Get the shared baseline registry."""
    global _default
    if _default is None:
        _default = StandardEntityRegistry(_DEFAULT_RECORDS)
    return _default
