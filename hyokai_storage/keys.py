"""Local storage key names.

All keys share the ``hyokai-`` prefix. The names are part of the
persistence format and must not change.
"""

KEY_PREFIX = "hyokai"


def namespaced(name: str) -> str:
    """Return ``name`` under the common key prefix."""
    return f"{KEY_PREFIX}-{name}"


HISTORY = namespaced("history")
SIMPLE_HISTORY = namespaced("simple-history")

MODE = namespaced("mode")
BEGINNER_MODE = namespaced("beginner-mode")
LANGUAGE = namespaced("language")
SELECTED_MODEL_INDEX = namespaced("selected-model-index")
COMPARE_MODEL_INDICES = namespaced("compare-model-indices")

USER_CONTEXT = namespaced("user-context")
SAVED_CONTEXTS = namespaced("saved-contexts")
ACTIVE_CONTEXT_ID = namespaced("active-context-id")
SESSION_ID = namespaced("session-id")

GITHUB_PAT = namespaced("github-pat")
GITHUB_REPOS = namespaced("github-repos")
GITHUB_SETTINGS = namespaced("github-settings")

MIGRATION_COMPLETE = namespaced("migration-complete")

PREFERENCE_KEYS = (
    MODE,
    BEGINNER_MODE,
    LANGUAGE,
    SELECTED_MODEL_INDEX,
    COMPARE_MODEL_INDICES,
)

STORAGE_TEST_KEY = "__storage_test__"
