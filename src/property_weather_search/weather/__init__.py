from .batcher import Coordinate, WeatherBatcher
from .cache import WeatherRecordCache, weather_key
from .codes import condition_for_code
from .fetcher import WeatherFetcher
from .refresh import WeatherRefresher

__all__ = [
    "Coordinate",
    "WeatherBatcher",
    "WeatherFetcher",
    "WeatherRecordCache",
    "WeatherRefresher",
    "condition_for_code",
    "weather_key",
]
