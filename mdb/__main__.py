import logging
import sys
from typing import Annotated

from typer import Argument
from typer import Exit
from typer import Option
from typer import Typer

from .activation import Destination
from .activation import DestinationType
from .container import Container
from .event import Event

app = Typer()


@app.command()
def beans():
    """Show all registered message-driven beans."""
    container = Container()
    try:
        beans = container.beans()

        if not beans:
            print("No message-driven beans registered.")
            return

        # Calculate column widths
        destinations = [str(bean.activation.destination) for bean in beans]
        name_width = max(len("Name"), max(len(bean.name) for bean in beans))
        destination_width = max(len("Destination"), max(map(len, destinations)))
        path_width = max(len("Path"), max(len(bean.path) for bean in beans))

        print(
            f"{'Name':<{name_width}} | {'Destination':<{destination_width}} | "
            f"{'Path':<{path_width}}"
        )
        print(
            f"{'-' * name_width}-+-{'-' * destination_width}-+-{'-' * path_width}"
        )
        for bean, destination in zip(beans, destinations, strict=True):
            print(
                f"{bean.name:<{name_width}} | {destination:<{destination_width}} | "
                f"{bean.path:<{path_width}}"
            )
    finally:
        container.shutdown()


@app.command()
def run(verbose: bool = False):
    """Deploy every registered message-driven bean.

    Runs until interrupted, or until a bean stops unexpectedly.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    container = Container()
    try:
        container.run()
    except KeyboardInterrupt:
        print("Shutting down gracefully.")
    finally:
        container.shutdown()


@app.command()
def send(
    destination: Annotated[str, Argument(help="Name of the queue or topic.")],
    text: Annotated[str, Argument(help="Text of the message.")],
    topic: Annotated[
        bool, Option("--topic", help="Send to a topic instead of a queue.")
    ] = False,
    connection_factory: Annotated[
        str | None,
        Option(help="Lookup name of the connection factory to send with."),
    ] = None,
):
    """Send a text message to a queue or topic."""
    container = Container()
    try:
        message = container.send(
            Destination(
                destination, DestinationType.TOPIC if topic else DestinationType.QUEUE
            ),
            text,
            connection_factory=connection_factory,
        )
        print(f"Sent message {message.id} to {destination}")
    finally:
        container.shutdown()


@app.command()
def purge(
    queues: Annotated[
        str,
        Argument(
            help="Comma-separated queue names, e.g. 'DEV.QUEUE.1' or 'orders,audit'.",
            metavar="QUEUE[,QUEUE2,...]",
        ),
    ],
    connection_factory: Annotated[
        str | None,
        Option(help="Lookup name of the connection factory to purge with."),
    ] = None,
):
    """Remove every pending message from some queues.

    Messages already delivered to a running listener are not affected.
    """
    names = [name.strip() for name in queues.split(",") if name.strip()]
    if not names:
        print("No queue names given.", file=sys.stderr)
        raise Exit(2)

    container = Container()
    try:
        for name in names:
            purged = container.purge(queue=name, connection_factory=connection_factory)
            print(f"Purged {purged} message(s) from {name}")
    finally:
        container.shutdown()


@app.command()
def monitor():
    """Deploy every registered bean and print its events as they happen."""
    container = Container()
    events = container.subscribe({Event})
    try:
        container.deploy_all()
        while True:
            print(events.get())
    except KeyboardInterrupt:
        print("Shutting down gracefully.")
    finally:
        container.unsubscribe(events)
        container.shutdown()


if __name__ == "__main__":
    app()
