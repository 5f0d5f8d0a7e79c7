"""Video state machine for managing lifecycle transitions."""

from app.schemas import VideoState


class VideoStateMachine:
    """State machine for managing video state transitions.

    State flow with triggers:
    - DRAFT (upload URL requested, record created) -> UPLOADING (write credential issued)
      | PUBLISHED (details stored without transcoding) | LIVE (stream started)
    - UPLOADING -> TRANSCODING (start transcode) | PUBLISHED (details stored)
    - TRANSCODING -> PUBLISHED (worker succeeded) | FAILED (worker or RPC error)
    - FAILED -> TRANSCODING (resubmitted by a new start transcode call)
    - LIVE -> PUBLISHED (stream ended, recording kept)
    - PUBLISHED is terminal

    Deletion is allowed from every state and is not modelled as a transition.
    """

    TRANSITIONS: dict[VideoState, set[VideoState]] = {
        VideoState.DRAFT: {
            VideoState.UPLOADING,
            VideoState.PUBLISHED,
            VideoState.LIVE,
        },
        VideoState.UPLOADING: {
            VideoState.TRANSCODING,
            VideoState.PUBLISHED,
        },
        VideoState.TRANSCODING: {VideoState.PUBLISHED, VideoState.FAILED},
        VideoState.FAILED: {VideoState.TRANSCODING},
        VideoState.LIVE: {VideoState.PUBLISHED},
        VideoState.PUBLISHED: set(),
    }

    TERMINAL_STATES: set[VideoState] = {VideoState.PUBLISHED}

    @classmethod
    def can_transition(cls, current: VideoState, new: VideoState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current video state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: VideoState) -> bool:
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: VideoState) -> set[VideoState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: VideoState) -> set[VideoState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}
