"""Shared schema types."""
from __future__ import annotations

import datetime as dt
from typing import Annotated

from pydantic import AfterValidator

from shortlink.utils.time import as_utc

# SQLite hands datetimes back without tzinfo; everything stored is UTC.
UTCDateTime = Annotated[dt.datetime, AfterValidator(as_utc)]
