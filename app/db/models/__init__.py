from .video import Video
from .current_film import CurrentFilm, SINGLETON_LOCK_KEY

__all__ = [
    "Video",
    "CurrentFilm",
    "SINGLETON_LOCK_KEY",
]
