"""forgesync — deploy canonical agent and skill definitions to AI tool providers.

One markdown source per agent or skill, many provider-specific artifacts.
Four targets: Claude, Gemini, Codex and OpenCode.
Every deployed file carries a synced-from marker so it can be removed safely.
"""

__version__ = "0.1.0"

SYNC_MARKER_PREFIX = "# synced-from: "
