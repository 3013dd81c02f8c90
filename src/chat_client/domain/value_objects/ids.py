from __future__ import annotations

from typing import Final, Literal, TypeAlias

PUBLIC_CONVERSATION: Final = "public"

# The shared public thread, or a private thread keyed by the counterpart's user id.
ConversationId: TypeAlias = Literal["public"] | int
