import pytest
from pika import BlockingConnection
from pika import ConnectionParameters
from pika.exceptions import AMQPConnectionError


@pytest.fixture(scope="session")
def connection_params() -> ConnectionParameters:
    """Connection parameters for a RabbitMQ server on localhost."""
    parameters = ConnectionParameters(connection_attempts=1, socket_timeout=2)
    try:
        BlockingConnection(parameters).close()
    except AMQPConnectionError:
        pytest.skip("RabbitMQ is not running on localhost")
    return parameters
