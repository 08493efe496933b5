from .activation import Destination as Destination
from .activation import DestinationType as DestinationType
from .container import Container as Container
from .listener import MessageListener as MessageListener
from .message import BytesMessage as BytesMessage
from .message import MapMessage as MapMessage
from .message import Message as Message
from .message import TextMessage as TextMessage
from .registry import message_driven as message_driven
