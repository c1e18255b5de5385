"""Authentication sessions providing the player's identity to the game's command line.
Only offline sessions are built in, online sessions are supplied by an external
collaborator implementing `AuthSession`.
"""

from uuid import UUID, uuid5
import platform

from typing import Optional, Dict


class AuthSession:
    """An abstract class for defining authentication sessions. These sessions are then
    provided as an argument for starting the game. They provide all information such as
    access player's token, username or UUID.

    The class variable `user_type` is an information sent through command line to the
    game.
    """

    user_type: str

    def __init__(self) -> None:
        self.access_token = ""
        self.username = ""
        self.uuid = ""

    def format_session_argument(self) -> str:
        """Format the legacy session argument, `token:{access_token}:{uuid}`.
        """
        return f"token:{self.access_token}:{self.uuid}"

    def args_replacements(self) -> Dict[str, str]:
        """Return the replacements of the authentication placeholders of the game's
        arguments template.
        """
        return {
            "auth_player_name": self.username,
            "auth_uuid": self.uuid,
            "auth_access_token": self.access_token,
            "user_type": self.user_type,
            "auth_session": self.format_session_argument()
        }


class OfflineAuthSession(AuthSession):
    """Offline session, this is quite contradictory but it's actually useful to simplify
    the start logic. It provides optional static username and UUID and random when kept
    unspecified.
    """

    user_type = "legacy"

    def __init__(self, username: Optional[str] = None, uuid: Optional[str] = None) -> None:
        super().__init__()
        if uuid is not None and len(uuid) == 32:
            # If the UUID is already valid.
            self.uuid = uuid
            self.username = uuid[:8] if username is None else username[:16]
        else:
            namespace_hash = UUID("8df5a464-38de-11ec-aa66-3fd636ee2ed7")
            if username is None:
                self.uuid = uuid5(namespace_hash, platform.node()).hex
                self.username = self.uuid[:8]
            else:
                self.username = username[:16]
                self.uuid = uuid5(namespace_hash, self.username).hex

    def format_session_argument(self) -> str:
        return "-"
