"""Built-in check kinds for declarative check units.

A declarative unit is a JSON document ``{"kind": "...", "params": {...}}``
selecting one of the closed set of kinds registered in ``CHECK_KINDS``. Each
kind validates its params with a pydantic model and inspects the tenant's
stack through the read-only ``Inspector``.
"""

import logging
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

STACK_TAG = "aws:cloudformation:stack-name"


def _tags_contain_stack(tags: list[dict[str, Any]] | None, stack_name: str) -> bool:
    return any(t.get("Key") == STACK_TAG and t.get("Value") == stack_name for t in tags or [])


class CheckOutcome(BaseModel):
    """What a check kind reports back for its criterion."""

    implemented: bool
    details: dict[str, Any] = Field(default_factory=dict)


class CheckKind:
    """Base class for built-in check kinds.

    Subclasses declare ``name``, ``Params`` and the ``services`` they inspect.
    """

    name: ClassVar[str]
    services: ClassVar[tuple[str, ...]] = ()

    class Params(BaseModel):
        model_config = ConfigDict(extra="forbid", frozen=True)

    def __init__(self, params: BaseModel):
        self.params = params

    def evaluate(self, ctx) -> CheckOutcome:
        raise NotImplementedError


class AutoscalingMinInstances(CheckKind):
    """An Auto Scaling group in the stack keeps at least ``min_instances`` running."""

    name = "autoscaling_min_instances"
    services = ("autoscaling",)

    class Params(CheckKind.Params):
        min_instances: int = Field(default=2, ge=1)

    def evaluate(self, ctx) -> CheckOutcome:
        paginator = ctx.client("autoscaling").get_paginator("describe_auto_scaling_groups")
        groups = []
        for page in paginator.paginate():
            for group in page.get("AutoScalingGroups", []):
                if _tags_contain_stack(group.get("Tags"), ctx.stack_name):
                    groups.append(
                        {"name": group["AutoScalingGroupName"], "min_size": group.get("MinSize", 0)}
                    )

        implemented = any(g["min_size"] >= self.params.min_instances for g in groups)
        return CheckOutcome(
            implemented=implemented,
            details={"min_instances": self.params.min_instances, "groups": groups},
        )


class RdsMultiAz(CheckKind):
    """A database instance in the stack is deployed Multi-AZ."""

    name = "rds_multi_az"
    services = ("rds",)

    def evaluate(self, ctx) -> CheckOutcome:
        paginator = ctx.client("rds").get_paginator("describe_db_instances")
        instances = []
        for page in paginator.paginate():
            for instance in page.get("DBInstances", []):
                if _tags_contain_stack(instance.get("TagList"), ctx.stack_name):
                    instances.append(
                        {
                            "identifier": instance["DBInstanceIdentifier"],
                            "multi_az": bool(instance.get("MultiAZ")),
                        }
                    )

        implemented = any(i["multi_az"] for i in instances)
        return CheckOutcome(implemented=implemented, details={"instances": instances})


class CloudwatchAlarm(CheckKind):
    """An alarm named after the stack watches ``metric_name``."""

    name = "cloudwatch_alarm"
    services = ("cloudwatch",)

    class Params(CheckKind.Params):
        metric_name: str = Field(min_length=1)
        namespace: str | None = None

    def evaluate(self, ctx) -> CheckOutcome:
        paginator = ctx.client("cloudwatch").get_paginator("describe_alarms")
        matching = []
        for page in paginator.paginate(AlarmNamePrefix=ctx.stack_name):
            for alarm in page.get("MetricAlarms", []):
                if alarm.get("MetricName") != self.params.metric_name:
                    continue
                if self.params.namespace and alarm.get("Namespace") != self.params.namespace:
                    continue
                matching.append(alarm["AlarmName"])

        return CheckOutcome(
            implemented=bool(matching),
            details={"metric_name": self.params.metric_name, "alarms": matching},
        )


class DynamodbPointInTimeRecovery(CheckKind):
    """The stack's table has point-in-time recovery enabled."""

    name = "dynamodb_point_in_time_recovery"
    services = ("dynamodb",)

    class Params(CheckKind.Params):
        table_name: str = Field(min_length=1)

    def table_for(self, stack_name: str) -> str:
        if self.params.table_name.startswith(stack_name):
            return self.params.table_name
        return f"{stack_name}-{self.params.table_name}"

    def evaluate(self, ctx) -> CheckOutcome:
        from botocore.exceptions import ClientError

        table = self.table_for(ctx.stack_name)
        try:
            response = ctx.client("dynamodb").describe_continuous_backups(TableName=table)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("TableNotFoundException", "ResourceNotFoundException"):
                return CheckOutcome(implemented=False, details={"table": table, "found": False})
            raise

        status = (
            response.get("ContinuousBackupsDescription", {})
            .get("PointInTimeRecoveryDescription", {})
            .get("PointInTimeRecoveryStatus", "DISABLED")
        )
        return CheckOutcome(
            implemented=status == "ENABLED",
            details={"table": table, "point_in_time_recovery": status},
        )


CHECK_KINDS: dict[str, type[CheckKind]] = {
    AutoscalingMinInstances.name: AutoscalingMinInstances,
    RdsMultiAz.name: RdsMultiAz,
    CloudwatchAlarm.name: CloudwatchAlarm,
    DynamodbPointInTimeRecovery.name: DynamodbPointInTimeRecovery,
}


def build_check_kind(declaration: dict[str, Any]) -> CheckKind:
    """Instantiate a check kind from a declarative unit document.

    Raises:
        KeyError: If the kind is not registered
        pydantic.ValidationError: If the params do not match the kind
    """
    kind_name = declaration.get("kind")
    kind_class = CHECK_KINDS.get(kind_name)
    if kind_class is None:
        msg = f"Check kind {kind_name} not supported"
        raise KeyError(msg)
    params = kind_class.Params.model_validate(declaration.get("params") or {})
    return kind_class(params)
