"""Player identity derived from the simulated robot's name."""

import enum
from typing import Tuple

from .errors import GatewaySetupError


class Team(enum.Enum):
    RED = "red"
    BLUE = "blue"


def parse_robot_name(name: str) -> Tuple[int, Team]:
    """
    Derive player number and team from a robot name such as ``"red player 2"``.

    The player number is the last space-separated token; names starting
    with ``r`` belong to the red team, every other name to the blue team.

    Raises:
        GatewaySetupError: If the name does not end with a player number
    """
    token = name.rsplit(" ", 1)[-1]
    try:
        player_id = int(token)
    except ValueError:
        raise GatewaySetupError(f'Cannot derive player number from robot name "{name}"') from None
    team = Team.RED if name.startswith("r") else Team.BLUE
    return player_id, team
