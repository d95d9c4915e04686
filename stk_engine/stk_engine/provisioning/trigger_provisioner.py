"""Trigger provisioner: converge live trigger bindings to the rule registry.

For every rule the target set is computed against the live catalog, then a
trigger named ``t<prefix>_<root>`` is created on each target table that does
not already carry it.  Existing triggers are never altered or dropped, which
makes re-running safe after any schema change.  Partition children are
excluded for every rule shape; their parent carries the binding.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import ProvisioningConflictError
from stk_engine.models.trigger_rule import ProvisioningReport, TriggerBinding, TriggerRule
from stk_engine.provisioning.catalog import SchemaCatalog, catalog_for
from stk_engine.state.repository import TriggerRuleRepository

logger = logging.getLogger(__name__)


def resolve_target_tables(
    rule: TriggerRule,
    base_tables: Iterable[str],
    partition_children: Iterable[str],
) -> list[str]:
    """Return the sorted tables *rule* applies to.

    * no flags: all base tables;
    * ``is_include``: ``table_scope`` ∩ base tables;
    * ``is_exclude``: base tables − ``table_scope``;

    minus partition children in every case.
    """
    candidates = set(base_tables) - set(partition_children)
    scope = set(rule.table_scope)
    if rule.is_include:
        candidates &= scope
    elif rule.is_exclude:
        candidates -= scope
    return sorted(candidates)


def _reject_duplicate_roots(rules: Iterable[TriggerRule]) -> None:
    seen: set[str] = set()
    for rule in rules:
        if rule.root_name in seen:
            raise ProvisioningConflictError(f"Trigger rule '{rule.root_name}' is defined more than once")
        seen.add(rule.root_name)


class TriggerProvisioner:
    """Creates missing trigger bindings for every registered rule."""

    def __init__(
        self,
        session: AsyncSession,
        catalog: SchemaCatalog | None = None,
        *,
        schema: str = "public",
    ) -> None:
        self._session = session
        self._catalog = catalog
        self._schema = schema

    async def provision(self, rules: list[TriggerRule] | None = None) -> ProvisioningReport:
        """Create any missing bindings and report what was created or found.

        Parameters
        ----------
        rules:
            Rules to apply; defaults to every row of ``stk_trigger_mgt``.

        Raises
        ------
        ProvisioningConflictError
            If two rules share a ``root_name``, or a trigger was created
            concurrently by another run.
        PreconditionError
            If no catalog is available for the session's dialect.
        """
        catalog = self._catalog if self._catalog is not None else catalog_for(self._session, schema=self._schema)
        if rules is None:
            rules = await TriggerRuleRepository(self._session).list_rules()
        _reject_duplicate_roots(rules)

        await catalog.acquire_lock()
        base_tables = await catalog.base_tables()
        children = await catalog.partition_children()

        report = ProvisioningReport()
        for rule in rules:
            for table_name in resolve_target_tables(rule, base_tables, children):
                binding = TriggerBinding(
                    table_name=table_name,
                    trigger_name=rule.trigger_name,
                    function_name=rule.function_name,
                    event_spec=rule.event_spec,
                )
                if await catalog.trigger_exists(table_name, binding.trigger_name):
                    logger.debug("Trigger %s already exists on %s", binding.trigger_name, table_name)
                    report.existing.append(binding)
                    continue
                await catalog.create_trigger(binding)
                logger.info(
                    "Created trigger %s on %s (%s)",
                    binding.trigger_name,
                    table_name,
                    rule.event_spec.render(),
                )
                report.created.append(binding)

        logger.info(
            "Provisioning complete: %d rule(s), %d created, %d existing",
            len(rules),
            report.created_count,
            report.existing_count,
        )
        return report
