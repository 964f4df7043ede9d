"""Conference session configuration."""

from dataclasses import dataclass, field

from ..core.config import ConfigLoader, get_config


@dataclass
class ConferenceSettings:
    """Which conference to join and how to pace the control API.

    Loaded from config.toml ``[bridge.conference]`` / ``[bridge.signaling]``.
    """

    node_address: str
    conference_alias: str
    display_name: str = "Transcription Bot"
    pin: str = ""
    call_tag: str = "transcription-bot"
    scheme: str = "https"
    verify_ssl: bool = True

    request_timeout_s: float = 10.0
    poll_timeout_s: float = 30.0
    # Spacing between successive event polls
    poll_interval_s: float = 0.1
    # Pause between closing media and hanging up on the bridge
    disconnect_grace_s: float = 0.1

    stun_servers: list[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: ConfigLoader | None = None) -> "ConferenceSettings":
        """Load conference settings from the Matilda config file."""
        config = config or get_config()
        conference = config.get("conference", {})
        signaling = config.get("signaling", {})
        return cls(
            node_address=config.node_address,
            conference_alias=config.conference_alias,
            display_name=config.display_name,
            pin=config.pin,
            call_tag=str(conference.get("call_tag", "transcription-bot")),
            scheme=str(conference.get("scheme", "https")),
            verify_ssl=bool(conference.get("verify_ssl", True)),
            request_timeout_s=float(signaling.get("request_timeout_s", 10.0)),
            poll_timeout_s=float(signaling.get("poll_timeout_s", 30.0)),
            poll_interval_s=float(signaling.get("poll_interval_s", 0.1)),
            disconnect_grace_s=float(signaling.get("disconnect_grace_s", 0.1)),
            stun_servers=config.stun_servers,
        )
