"""Recording state publisher for the pub/sub state channel."""

import logging
from typing import Callable

from pubsub import pub

from ..models.recording import RecordingState
from ..models.session import SessionHandle

logger = logging.getLogger(__name__)

StateListener = Callable[..., None]


class LoggingListenerExcHandler(pub.IListenerExcHandler):
    """Logs a failing listener so delivery continues with the remaining listeners."""

    def __call__(self, listenerID: str, topicObj) -> None:
        logger.error(f"Error in listener {listenerID} on {topicObj.getName()}", exc_info=True)


def install_listener_exc_handler() -> None:
    """Install the logging handler unless the application already set one."""
    if pub.getListenerExcHandler() is None:
        pub.setListenerExcHandler(LoggingListenerExcHandler())


def recording_topic(session: SessionHandle) -> str:
    """Pub/sub topic carrying the state of one session."""
    return f"recording_state_{session.slug}"


class RecordingStatePublisher:
    """Publishes recording state snapshots using pubsub.pub.

    Listeners are called with a single keyword argument ``state``. pypubsub
    keeps weak references, so callers must hold on to their listeners.
    """

    def __init__(self, topic: str):
        """Initialize recording state publisher.

        Args:
            topic: Pub/sub topic name for state snapshots
        """
        self.topic = topic
        install_listener_exc_handler()
        logger.info(f"RecordingStatePublisher initialized with topic: {topic}")

    def publish(self, state: RecordingState) -> None:
        """Publish a state snapshot to every subscriber.

        A failing listener is logged by the installed exception handler and
        the remaining listeners still receive the snapshot. Nothing propagates
        into the publishing thread, which may be the tick or device thread.
        """
        try:
            pub.sendMessage(self.topic, state=state)
        except Exception as e:
            logger.error(f"Error in recording state listener on {self.topic}: {e}", exc_info=True)

    def deliver(self, listener: StateListener, state: RecordingState) -> None:
        """Send a snapshot to one listener only."""
        try:
            listener(state=state)
        except Exception as e:
            logger.error(f"Error in recording state listener: {e}", exc_info=True)

    def subscribe(self, listener: StateListener) -> bool:
        """Subscribe a listener.

        Returns:
            True if the listener was not already subscribed
        """
        _, newly_subscribed = pub.subscribe(listener, self.topic)
        logger.debug(f"Listener subscribed to {self.topic} (new={newly_subscribed})")
        return newly_subscribed

    def unsubscribe(self, listener: StateListener) -> None:
        try:
            pub.unsubscribe(listener, self.topic)
        except Exception as e:
            logger.warning(f"Error during unsubscribe from {self.topic}: {e}")
