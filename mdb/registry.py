from collections.abc import Mapping

from .activation import ActivationConfig
from .bean import Bean
from .listener import MessageListener

LISTENER_REGISTRY: dict[str, Bean] = {}


def message_driven(
    *,
    name: str | None = None,
    activation_config: Mapping[str, str],
):
    """Decorate a listener class to register it as a message-driven bean.

    The activation config is validated immediately, so a misconfigured bean
    fails when its module is imported rather than when it is deployed.
    """
    activation = ActivationConfig.parse(activation_config)

    def register[L: type[MessageListener]](cls: L) -> L:
        if not (isinstance(cls, type) and issubclass(cls, MessageListener)):
            raise TypeError(f"{cls!r} must be a subclass of MessageListener")

        bean = Bean(name or cls.__name__, cls, activation)
        registered = LISTENER_REGISTRY.setdefault(bean.name, bean)
        if registered.listener is not cls:
            raise ValueError(
                f"Bean name {bean.name!r} is already registered by {registered.path}"
            )
        return cls

    return register
