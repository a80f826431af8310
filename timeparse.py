from datetime import datetime

import pytz

from logger_config import logger

EASTERN = pytz.timezone("US/Eastern")

TIME_FORMAT = "%m/%d/%Y %I:%M%p"
DISPLAY_FORMAT = "%A, %B %d at %I:%M%p"


class ParseFailure(ValueError):
    pass


def parse_time(text: str, tz=EASTERN) -> datetime:
    """
    Parse a race time such as ``6/9/2021 11:00pm`` as wall-clock time in *tz*.

    An hour repeated by a DST fall-back resolves to its first occurrence.
    A time skipped by a spring-forward does not exist and is rejected.
    """
    normalized = (text or "").strip().lower()
    logger.debug(f"Parsing date from {normalized!r}")
    try:
        naive = datetime.strptime(normalized, TIME_FORMAT)
    except ValueError as e:
        logger.info(f"Error parsing date: {e}")
        raise ParseFailure(f"Could not parse {text!r} as MM/DD/YYYY hh:mmam|pm") from e

    try:
        return tz.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        # is_dst=True picks the daylight reading, which is the earlier instant
        first = tz.localize(naive, is_dst=True)
        second = tz.localize(naive, is_dst=False)
        logger.warning(f"Ambiguous time {normalized!r}: {first.isoformat()} or {second.isoformat()}, using the first")
        return first
    except pytz.NonExistentTimeError as e:
        logger.warning(f"{normalized!r} does not exist in {tz.zone}")
        raise ParseFailure(f"{text!r} does not exist in {tz.zone}") from e


def format_time(moment: datetime, tz=EASTERN) -> str:
    return moment.astimezone(tz).strftime(DISPLAY_FORMAT)
