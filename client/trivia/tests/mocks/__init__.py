from trivia.tests.mocks.listener import RecordingListener
from trivia.transport.mock import MockConnector, MockTransport

__all__ = ["MockConnector", "MockTransport", "RecordingListener"]
