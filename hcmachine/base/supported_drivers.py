from typing import Literal


existing_drivers = Literal["hetzner"]


existing_operations = Literal[
    "create",
    "start",
    "stop",
    "restart",
    "kill",
    "rm",
    "status",
    "ip",
    "url",
    "flags",
]
