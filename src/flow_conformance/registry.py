"""Rule registry: resolves the Validator Unit for a message.

Units are registered explicitly under ``(domain, version, key[, flow])``
where ``key`` is an action (``"confirm"``) or, for domains that route by
action id, a finer-grained id (``"confirm_card_balance_failure"``).

Resolution order for a message:

1. routing key: ``action_id`` when the domain routes by action id and the
   message carries one, then the plain ``action``;
2. version: the message's schema version, then the domain's default
   version, then the domain-wide wildcard :data:`ANY_VERSION`;
3. flow: a flow-specific registration wins over a flow-agnostic one.

A miss returns None. Callers record a failed check and move on.
"""
from __future__ import annotations

import logging
from typing import (
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    Tuple,
    Union,
    runtime_checkable,
)

from flow_conformance.config import DomainConfig
from flow_conformance.models import CheckOutcome, Message, RegistrationError
from flow_conformance.store import ConsistencyStore

logger = logging.getLogger("flow_conformance.registry")

ANY_VERSION: str = "*"

_RuleKey = Tuple[str, str, str, Optional[str]]


@runtime_checkable
class ValidatorUnit(Protocol):
    """Atomic rule-checking capability for one (domain, version, action).

    A unit evaluates each independent business check in isolation and
    reports it as one passed or failed entry. It must not raise for a
    failed assertion. It may read and write the consistency store.
    """

    def __call__(
        self,
        message: Message,
        session_id: str,
        flow_id: str,
        action_id: Optional[str] = None,
        usecase_id: Optional[str] = None,
        *,
        store: ConsistencyStore,
    ) -> Union[CheckOutcome, Awaitable[CheckOutcome]]:
        ...


class RuleRegistry:
    """Static map from (domain, version, key, flow) to Validator Units."""

    def __init__(self) -> None:
        self._rules: Dict[_RuleKey, ValidatorUnit] = {}
        self._common: Dict[Optional[str], List[ValidatorUnit]] = {}
        self._default_versions: Dict[str, str] = {}

    # -- registration -------------------------------------------------------

    def register(
        self,
        domain: str,
        version: str,
        key: str,
        unit: ValidatorUnit,
        *,
        flow_id: Optional[str] = None,
        replace: bool = False,
    ) -> None:
        """Register ``unit`` for ``(domain, version, key[, flow_id])``.

        Raises:
            RegistrationError: If the slot is taken and ``replace`` is False.
        """
        rule_key: _RuleKey = (domain, version, key.lower(), flow_id)
        if rule_key in self._rules and not replace:
            raise RegistrationError(
                f"Validator already registered for domain={domain!r} "
                f"version={version!r} key={key!r} flow={flow_id!r}"
            )
        self._rules[rule_key] = unit

    def rule(
        self,
        domain: str,
        version: str,
        *keys: str,
        flow_id: Optional[str] = None,
    ) -> Callable[[ValidatorUnit], ValidatorUnit]:
        """Decorator form of :meth:`register` for one or more keys."""
        if not keys:
            raise RegistrationError("rule() needs at least one action or action id")

        def decorator(unit: ValidatorUnit) -> ValidatorUnit:
            for key in keys:
                self.register(domain, version, key, unit, flow_id=flow_id)
            return unit

        return decorator

    def register_common(self, unit: ValidatorUnit, domain: Optional[str] = None) -> None:
        """Register a unit that runs before the resolved one for every message.

        ``domain=None`` applies it to all domains.
        """
        self._common.setdefault(domain, []).append(unit)

    def set_default_version(self, domain: str, version: str) -> None:
        self._default_versions[domain] = version

    # -- resolution ---------------------------------------------------------

    def _version_chain(
        self, domain: str, version: Optional[str], config: Optional[DomainConfig]
    ) -> Iterator[str]:
        seen = set()
        default = (
            config.default_version
            if config is not None and config.default_version
            else self._default_versions.get(domain)
        )
        for candidate in (version, default, ANY_VERSION):
            if candidate and candidate not in seen:
                seen.add(candidate)
                yield candidate

    def resolve(
        self,
        domain: Optional[str],
        version: Optional[str],
        action: str,
        action_id: Optional[str] = None,
        flow_id: Optional[str] = None,
        *,
        config: Optional[DomainConfig] = None,
    ) -> Optional[ValidatorUnit]:
        """Return the Validator Unit for a message, or None when unresolved."""
        if not domain:
            return None
        keys: List[str] = []
        if config is not None and config.route_by_action_id and action_id:
            keys.append(action_id.lower())
        keys.append(action.lower())

        for key in keys:
            for candidate in self._version_chain(domain, version, config):
                for flow in (flow_id, None) if flow_id else (None,):
                    unit = self._rules.get((domain, candidate, key, flow))
                    if unit is not None:
                        if candidate != version:
                            logger.info(
                                "Resolved %s/%s via fallback version %s (requested %s)",
                                domain, key, candidate, version,
                            )
                        return unit
        return None

    def resolve_message(
        self, message: Message, config: Optional[DomainConfig] = None
    ) -> Optional[ValidatorUnit]:
        domain = message.domain or (config.domain if config is not None else None)
        return self.resolve(
            domain,
            message.schema_version,
            message.action,
            message.action_id,
            message.flow_id,
            config=config,
        )

    def common_units(self, domain: Optional[str]) -> Tuple[ValidatorUnit, ...]:
        units = list(self._common.get(None, ()))
        if domain is not None:
            units.extend(self._common.get(domain, ()))
        return tuple(units)

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, tuple) or len(item) not in (3, 4):
            return False
        domain, version, key = item[0], item[1], str(item[2]).lower()
        flow = item[3] if len(item) == 4 else None
        return (domain, version, key, flow) in self._rules

    def __len__(self) -> int:
        return len(self._rules)
