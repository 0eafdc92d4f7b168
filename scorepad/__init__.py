"""ScorePad Cloud - Google Drive backup and sync engine for ScorePad."""

__version__ = "1.0.0"
