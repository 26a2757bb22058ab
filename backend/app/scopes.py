from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

from sqlalchemy import Select, select
from sqlalchemy.orm import aliased, join

from backend.app.errors import ValidationError
from shared.enums import Dimension, ScopeKind
from shared.models import Company, Discount, DiscountAction

_DIMENSION_COLUMNS: Dict[Dimension, Callable[[Any], Any]] = {
    Dimension.AGE: lambda actions: actions.age_group,
    Dimension.GENDER: lambda actions: actions.gender,
    Dimension.CITY: lambda actions: actions.city,
    Dimension.REGION: lambda actions: actions.region,
    Dimension.DEVICE: lambda actions: actions.device_type,
}


@dataclass(frozen=True)
class Scope:
    """
    Base row source for analytics queries.

    ``actions`` is the aliased DiscountAction entity that filters and
    aggregations read columns from; ``source`` is what the query selects from
    and ``criteria`` restricts it to the scope target.
    """

    name: str
    source: Any
    actions: Any
    criteria: Tuple[Any, ...] = ()

    def select(self, *columns) -> Select:
        return select(*columns).select_from(self.source).where(*self.criteria)

    def dimension(self, dimension: Dimension):
        return _DIMENSION_COLUMNS[dimension](self.actions)


def for_discount(discount_id: int) -> Scope:
    actions = aliased(DiscountAction, name="a")
    return Scope(
        name=f"discount:{discount_id}",
        source=actions,
        actions=actions,
        criteria=(actions.discount_id == discount_id,),
    )


def for_company(company_id: int) -> Scope:
    actions = aliased(DiscountAction, name="a")
    source = join(actions, Discount, Discount.id == actions.discount_id).join(
        Company, Company.id == Discount.company_id
    )
    return Scope(
        name=f"company:{company_id}",
        source=source,
        actions=actions,
        criteria=(Company.id == company_id,),
    )


def everything() -> Scope:
    actions = aliased(DiscountAction, name="a")
    return Scope(name="all", source=actions, actions=actions)


_RESOLVERS: Dict[ScopeKind, Callable[[int], Scope]] = {
    ScopeKind.DISCOUNT: for_discount,
    ScopeKind.COMPANY: for_company,
}


def resolve_scope(kind, target_id: int) -> Scope:
    try:
        kind = ScopeKind(kind)
    except ValueError:
        raise ValidationError(f"Unsupported scope: {kind}")
    return _RESOLVERS[kind](int(target_id))
