"""JustDad: Umgangstermine verwalten, lokal oder im Gerätekalender."""

__version__ = "0.1.0"
