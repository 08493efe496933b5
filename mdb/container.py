import importlib
import logging
import os
import tomllib
from collections.abc import Iterable
from collections.abc import Mapping
from concurrent.futures import FIRST_COMPLETED
from concurrent.futures import wait
from pathlib import Path
from queue import Queue
from threading import Lock
from typing import Any

from .activation import ActivationError
from .activation import Destination
from .bean import Bean
from .broker import Broker
from .bus import Bus
from .deployment import Deployment
from .message import Message
from .message import bytes_message
from .message import map_message
from .message import text_message
from .registry import LISTENER_REGISTRY
from .tls import TLSConfig

logger = logging.getLogger(__name__)


class Container:
    """Deploy message-driven beans and manage their brokers.

    Configuration is read from the ``[tool.mdb]`` table of the nearest
    ``pyproject.toml``, with ``MDB_*`` environment variables taking
    precedence::

        [tool.mdb]
        broker = "pika://localhost:5672"
        register = ["myapp.listeners"]

        [tool.mdb.connection-factories]
        "jms/MQConnectionFactory" = "pikas://mq.example.com:5671"

        [tool.mdb.tls]
        truststore = "/etc/mdb/truststore.p12"
        truststore-password = "changeit"

    Brokers passed to the constructor replace the configured ones. The
    container shuts down every broker it was given or created.
    """

    def __init__(
        self,
        *,
        broker: Broker | None = None,
        connection_factories: Mapping[str, Broker] | None = None,
    ):
        self.__lock = Lock()
        self.__deploy_lock = Lock()
        self.__broker = broker
        self.__connection_factories = dict(connection_factories or {})
        self.__bus = Bus()
        self.__deployments = dict[str, Deployment]()
        self.__config = self.__load_config()
        self.__register_listeners()

    def __pyproject(self) -> Path | None:
        for path in [cwd := Path.cwd(), *cwd.parents]:
            candidate = path / "pyproject.toml"
            if candidate.is_file():
                return candidate
        return None

    def __load_config(self) -> dict[str, Any]:
        if pyproject := self.__pyproject():
            with pyproject.open("rb") as f:
                config = tomllib.load(f)
            return config.get("tool", {}).get("mdb", {})
        return {}

    def __tls(self) -> TLSConfig | None:
        return TLSConfig.from_env() or TLSConfig.from_config(
            self.__config.get("tls", {})
        )

    def __create_broker(self, uri: str) -> Broker:
        scheme = uri.partition(":")[0]
        match scheme:
            case "pika" | "pikas":
                from .pika.broker import PikaBroker

                return PikaBroker.from_uri(uri, tls=self.__tls())
            case "stub":
                from .stub.broker import StubBroker

                return StubBroker.from_uri(uri)
            case _:
                raise ValueError(
                    f"URI scheme must be 'pika:', 'pikas:' or 'stub:', got: {uri}"
                )

    def __register_listeners(self):
        """Import the listener modules named in pyproject.toml."""
        for module_name in self.__config.get("register", []):
            importlib.import_module(module_name)

    @property
    def broker(self) -> Broker:
        """The default broker, used by beans that name no connection factory."""
        with self.__lock:
            if self.__broker is None:
                broker_uri = os.environ.get("MDB_BROKER")
                if not broker_uri:
                    broker_uri = self.__config.get("broker")
                if not broker_uri:
                    raise ValueError(
                        "No broker URI configured. Set MDB_BROKER env var "
                        "or add 'broker' to [tool.mdb] in pyproject.toml"
                    )
                self.__broker = self.__create_broker(broker_uri)
            return self.__broker

    def connection_factory(self, name: str | None, /) -> Broker:
        """Look up the broker registered under a connection factory name."""
        if name is None:
            return self.broker
        with self.__lock:
            if name not in self.__connection_factories:
                uris = self.__config.get("connection-factories", {})
                if name not in uris:
                    raise ActivationError(
                        f"No connection factory named {name!r}. Add it to "
                        f"[tool.mdb.connection-factories] in pyproject.toml"
                    )
                self.__connection_factories[name] = self.__create_broker(uris[name])
            return self.__connection_factories[name]

    def beans(self) -> list[Bean]:
        """Return all registered beans."""
        return list(LISTENER_REGISTRY.values())

    def bean(self, name: str, /) -> Bean:
        return LISTENER_REGISTRY[name]

    def deployments(self) -> list[Deployment]:
        with self.__lock:
            return list(self.__deployments.values())

    def deploy(self, bean: Bean, /) -> Deployment:
        """Activate a bean, so that it receives messages from its destination."""
        with self.__deploy_lock:
            with self.__lock:
                if bean.name in self.__deployments:
                    raise ActivationError(f"{bean!r} is already deployed")
            broker = self.connection_factory(bean.activation.connection_factory)
            deployment = Deployment(bean, broker, self.__bus)
            deployment.start()
            with self.__lock:
                self.__deployments[bean.name] = deployment
        return deployment

    def deploy_all(self) -> list[Deployment]:
        """Activate every registered bean."""
        beans = self.beans()
        if not beans:
            logger.warning(
                "No message-driven beans are registered. Decorate listeners "
                "with @message_driven and list their modules in 'register' "
                "under [tool.mdb] in pyproject.toml"
            )
        return [self.deploy(bean) for bean in beans]

    def undeploy(self, bean: Bean, /):
        with self.__lock:
            deployment = self.__deployments.pop(bean.name, None)
        if deployment is not None:
            deployment.stop()

    def send(
        self,
        destination: Destination | str,
        body: str | bytes | Mapping[str, Any] | Message,
        /,
        *,
        properties: Mapping[str, Any] | None = None,
        connection_factory: str | None = None,
    ) -> Message:
        """Send a message, returning it as it was sent.

        A plain string destination names a queue.
        """
        if isinstance(destination, str):
            destination = Destination(destination)

        fields = {"properties": dict(properties or {})}
        match body:
            case Message():
                message = body
            case str():
                message = text_message(body, **fields)
            case bytes():
                message = bytes_message(body, **fields)
            case Mapping():
                message = map_message(body, **fields)
            case _:
                raise TypeError(f"Cannot send a message body of {type(body)}")

        broker = self.connection_factory(connection_factory)
        broker.send(message, destination=destination)
        return message

    def purge(self, *, queue: str, connection_factory: str | None = None) -> int:
        return self.connection_factory(connection_factory).purge(queue=queue)

    def subscribe[T](self, types: Iterable[type[T]]) -> Queue[T]:
        return self.__bus.subscribe(types)

    def unsubscribe(self, queue: Queue, /):
        self.__bus.unsubscribe(queue)

    def run(self):
        """Deploy every registered bean and block until one of them fails."""
        deployments = self.deploy_all()
        futures = [future for d in deployments for future in d.futures]
        if not futures:
            return

        done, _ = wait(futures, return_when=FIRST_COMPLETED)
        for future in done:
            future.result()
        logger.error("A message-driven bean stopped unexpectedly")

    def shutdown(self):
        """Shut down all components."""
        with self.__deploy_lock:
            for deployment in self.deployments():
                self.undeploy(deployment.bean)

        with self.__lock:
            brokers = {*self.__connection_factories.values()}
            if self.__broker is not None:
                brokers.add(self.__broker)
        for broker in brokers:
            broker.shutdown()
        self.__bus.shutdown()
