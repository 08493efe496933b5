from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Self


class ActivationError(ValueError):
    """A message-driven bean cannot be activated as configured."""


class DestinationType(StrEnum):
    QUEUE = "Queue"
    TOPIC = "Topic"

    @classmethod
    def parse(cls, value: str) -> Self:
        """Parse a destination type.

        Accepts the bare names as well as the Jakarta and Java EE interface
        names, e.g. ``Queue``, ``queue``, ``jakarta.jms.Queue``,
        ``javax.jms.Topic``.
        """
        name = value.strip().removeprefix("jakarta.jms.").removeprefix("javax.jms.")
        for member in cls:
            if name.lower() == member.value.lower():
                return member
        raise ActivationError(
            f"Destination type must be a Queue or a Topic, got: '{value}'"
        )


@dataclass(frozen=True)
class Destination:
    name: str
    type: DestinationType = DestinationType.QUEUE

    def __str__(self):
        return f"{self.type.value.lower()}:{self.name}"


PROPERTIES = frozenset(
    {
        "destinationType",
        "destination",
        "connectionFactoryLookup",
        "maxSession",
        "subscriptionDurability",
        "subscriptionName",
        "redeliverOnError",
    }
)


@dataclass(frozen=True, kw_only=True)
class ActivationConfig:
    """How a message-driven bean is bound to its destination.

    The connection factory is the lookup name of the broker to consume
    from, or None to use the container's default broker. The concurrency
    is the number of listener instances, and therefore the number of
    messages that are processed at the same time.
    """

    destination: Destination
    connection_factory: str | None = None
    concurrency: int = 1
    durable: bool = False
    subscription_name: str | None = None
    redeliver: bool = False

    @classmethod
    def parse(cls, properties: Mapping[str, str]) -> Self:
        """Parse activation config properties.

        | property                | example                     | default    |
        +-------------------------+-----------------------------+------------+
        | destinationType         | jakarta.jms.Queue           | Queue      |
        | destination             | DEV.QUEUE.1                 | (required) |
        | connectionFactoryLookup | jms/MQConnectionFactory     | (default)  |
        | maxSession              | 5                           | 1          |
        | subscriptionDurability  | Durable                     | NonDurable |
        | subscriptionName        | audit                       |            |
        | redeliverOnError        | true                        | false      |
        """

        unknown = sorted(set(properties) - PROPERTIES)
        if unknown:
            raise ActivationError(
                f"Unknown activation config properties: {unknown}. "
                f"Supported properties are: {sorted(PROPERTIES)}"
            )
        for key, value in properties.items():
            if not isinstance(value, str):
                raise ActivationError(
                    f"Activation config property {key} must be a string, "
                    f"got: {value!r}"
                )

        name = properties.get("destination", "").strip()
        if not name:
            raise ActivationError("Activation config must name a destination")

        destination_type = DestinationType.parse(
            properties.get("destinationType", DestinationType.QUEUE.value)
        )

        raw_concurrency = properties.get("maxSession", "1")
        try:
            concurrency = int(raw_concurrency)
        except ValueError:
            raise ActivationError(
                f"maxSession must be a positive integer, got: '{raw_concurrency}'"
            ) from None
        if concurrency <= 0:
            raise ActivationError(
                f"maxSession must be a positive integer, got: '{raw_concurrency}'"
            )

        durability = properties.get("subscriptionDurability", "NonDurable").strip()
        if durability.lower() not in ("durable", "nondurable"):
            raise ActivationError(
                f"subscriptionDurability must be Durable or NonDurable, "
                f"got: '{durability}'"
            )
        durable = durability.lower() == "durable"
        subscription_name = properties.get("subscriptionName", "").strip() or None
        if durable and destination_type is not DestinationType.TOPIC:
            raise ActivationError("Durable subscriptions require a Topic destination")
        if durable and not subscription_name:
            raise ActivationError("Durable subscriptions require a subscriptionName")

        raw_redeliver = properties.get("redeliverOnError", "false").strip().lower()
        if raw_redeliver not in ("true", "false"):
            raise ActivationError(
                f"redeliverOnError must be true or false, got: '{raw_redeliver}'"
            )

        connection_factory = (
            properties.get("connectionFactoryLookup", "").strip() or None
        )

        return cls(
            destination=Destination(name, destination_type),
            connection_factory=connection_factory,
            concurrency=concurrency,
            durable=durable,
            subscription_name=subscription_name,
            redeliver=raw_redeliver == "true",
        )

    @property
    def subscription(self) -> str | None:
        """The durable subscription to consume from, if any."""
        return self.subscription_name if self.durable else None
