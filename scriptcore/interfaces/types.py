# scriptcore/interfaces/types.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Any, Callable, List, NamedTuple, Tuple

TimerID = int
REDIRECT_MODES = ("follow", "manual", "error")
HeaderPairs = List[Tuple[str, str]]


class TransportResponse(NamedTuple):
    status: int
    headers: HeaderPairs
    body: bytes
    final_url: str


# Callback Types
AbortListener = Callable[[], None]
ObserverCallback = Callable[[List[Any], Any], None]
WrapperFactory = Callable[[Any], Any]
