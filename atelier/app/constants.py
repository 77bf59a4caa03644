"""
Application Constants.
Stores default values for autosave timing, content locations and UI labels.
"""

# Window Configuration
WINDOW_TITLE = "I-Catching CMS - Site Content"
DEFAULT_WINDOW_WIDTH = 960
DEFAULT_WINDOW_HEIGHT = 720
WINDOW_SETTINGS_KEY = "I-Catching"
WINDOW_SETTINGS_APP = "AtelierCMS"
DEFAULT_DB_NAME = "content.atelier"

# Autosave Timing (milliseconds)
AUTOSAVE_DELAY_MS = 1500
AUTOSAVE_LONG_TEXT_DELAY_MS = 2000
SAVED_INDICATOR_FADE_MS = 2000

# Content Store Locations
SITE_CONTENT_COLLECTION = "siteContent"
SITE_CONTENT_DOC_ID = "main"
UPDATED_AT_FIELD = "updatedAt"

# Image Categories (upload folders)
IMAGE_CATEGORIES = ("hero", "atelier", "gallery", "blog", "portraits")
UPLOAD_CHUNK_SIZE = 64 * 1024

# Field Status Labels
STATUS_LABEL_DIRTY = "Niet opgeslagen"
STATUS_LABEL_SAVING = "Opslaan..."
STATUS_LABEL_SAVED = "Opgeslagen"
STATUS_LABEL_ERROR = "Fout"
STATUS_LABEL_RETRY = "Opnieuw"

# Unsaved Changes Prompt
UNSAVED_CHANGES_TITLE = "Unsaved Changes"
UNSAVED_CHANGES_MESSAGE = (
    "Je hebt onopgeslagen wijzigingen. Weet je zeker dat je wilt verlaten?"
)
