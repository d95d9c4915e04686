"""Migration-time convergence of the live schema to the registries.

Run after every migration: publishes the enum registry, registers the
built-in trigger rules, synchronizes every type table and provisions any
missing trigger bindings.  Each step only adds what is missing, so the whole
run can be repeated safely.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from stk_engine.errors import PreconditionError
from stk_engine.models.context import ActorContext
from stk_engine.models.trigger_rule import ProvisioningReport, TriggerRule
from stk_engine.provisioning.catalog import SchemaCatalog
from stk_engine.provisioning.trigger_provisioner import TriggerProvisioner
from stk_engine.provisioning.type_synchronizer import TypeSynchronizer
from stk_engine.registry.kinds import ConventionSchema
from stk_engine.state.repository import EnumValueRepository, TriggerRuleRepository

logger = logging.getLogger(__name__)


class ConvergeReport(BaseModel):
    """What one convergence run changed."""

    enum_members_published: int = 0
    rules_registered: int = 0
    type_rows_inserted: dict[str, int] = Field(default_factory=dict)
    provisioning: ProvisioningReport = Field(default_factory=ProvisioningReport)

    @property
    def changed(self) -> bool:
        return bool(
            self.enum_members_published
            or self.rules_registered
            or any(self.type_rows_inserted.values())
            or self.provisioning.created_count
        )


async def converge(
    session: AsyncSession,
    schema: ConventionSchema,
    *,
    actor: ActorContext | None,
    rules: tuple[TriggerRule, ...] | None = None,
    catalog: SchemaCatalog | None = None,
    db_schema: str = "public",
    provision: bool = True,
) -> ConvergeReport:
    """Bring registries, type tables and trigger bindings up to date.

    Parameters
    ----------
    session:
        Session whose transaction the whole run happens in.
    schema:
        Entity-kind registry to converge.
    actor:
        Identity stamped on inserted rows.
    rules:
        Trigger rules to register; defaults to the built-in rules.
    catalog:
        Live catalog for the provisioner; defaults to the dialect's catalog.
    db_schema:
        Database schema scanned by the provisioner.
    provision:
        Whether to provision trigger bindings.  Local SQLite stores have no
        trigger functions and converge with ``provision=False``.

    Raises
    ------
    PreconditionError
        If *actor* is missing or a type table does not exist.
    ProvisioningConflictError
        If a rule conflicts with a registered one or a trigger collides.
    """
    if actor is None:
        raise PreconditionError("An acting identity is required to converge the schema")
    if rules is None:
        from stk_engine.schema.builtin import BUILTIN_TRIGGER_RULES

        rules = BUILTIN_TRIGGER_RULES

    report = ConvergeReport()
    report.enum_members_published = await EnumValueRepository(session).publish(schema.enums)

    rule_repo = TriggerRuleRepository(session)
    for rule in rules:
        if await rule_repo.ensure(rule, actor=actor):
            report.rules_registered += 1

    report.type_rows_inserted = await TypeSynchronizer(session, schema, db_schema=db_schema).synchronize_all(
        actor=actor
    )
    if provision:
        report.provisioning = await TriggerProvisioner(session, catalog, schema=db_schema).provision()

    logger.info(
        "Converged schema: %d enum member(s), %d rule(s), %d type row(s), %d trigger(s) created",
        report.enum_members_published,
        report.rules_registered,
        sum(report.type_rows_inserted.values()),
        report.provisioning.created_count,
    )
    return report
