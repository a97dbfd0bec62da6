# usage: python3 image_downloader.py
# usage: python3 image_downloader.py --input images.json --output "/your/folder" --dry-run

import os
import subprocess
import sys
import json
import logging
import argparse
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import urlparse

import requests
from tqdm import tqdm

from exif_dates import set_exif_dates

# === CONFIG ===
INPUT_FILE = 'images.json'
LOG_FILE = 'download.log'
PICTURES_SUBFOLDER = 'Downloaded Images'
DEFAULT_EXTENSION = '.jpg'
# %m and %d accept both "9" and "09", so these cover the padded variants too
DATE_FORMATS = ('%m/%d/%y', '%m/%d/%Y')
TWO_DIGIT_YEAR_MAX = 2049
DOWNLOAD_TIMEOUT = 100  # seconds


# === LOGGING ===
def configure_logging(log_file=LOG_FILE):
    logging.basicConfig(filename=log_file, level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def log_info(msg):
    # tqdm.write keeps messages from breaking the progress bar
    tqdm.write(msg)
    logging.info(msg)
    sys.stdout.flush()


def log_warn(msg):
    tqdm.write(msg)
    logging.warning(msg)
    sys.stdout.flush()


def log_error(msg, exc_info=False):
    tqdm.write(msg, file=sys.stderr)
    if exc_info:
        logging.error(msg, exc_info=True)
    else:
        logging.error(msg)
    sys.stderr.flush()


# === RECORDS ===
@dataclass(frozen=True)
class ImageRecord:
    date: Optional[str]
    title: str
    link: Optional[str]

    @classmethod
    def from_json(cls, entry: dict) -> "ImageRecord":
        # Property names are matched case-insensitively ("Date", "date", "DATE")
        props = {str(k).lower(): v for k, v in entry.items()}
        return cls(
            date=props.get('date'),
            title=props.get('title') or '',
            link=props.get('link'),
        )


def load_records(path) -> List[ImageRecord]:
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"JSON file not found at path: {path}")

    # utf-8-sig also accepts files saved with a BOM
    with open(path, 'r', encoding='utf-8-sig') as f:
        data = json.load(f)
    if data is None:
        raise ValueError("JSON data is null")
    if not isinstance(data, list):
        raise ValueError(f"JSON data must be an array of images, got {type(data).__name__}")
    return [ImageRecord.from_json(entry) for entry in data]


# === OUTCOMES ===
@dataclass
class Written:
    record: ImageRecord
    path: Path
    timestamp_error: Optional[str] = None


@dataclass
class TaggingFailed:
    record: ImageRecord
    path: Path
    reason: str
    timestamp_error: Optional[str] = None


@dataclass
class Skipped:
    record: ImageRecord
    reason: str


@dataclass
class Planned:
    record: ImageRecord
    path: Path


RecordOutcome = Union[Written, TaggingFailed, Skipped, Planned]


@dataclass
class RunReport:
    outcomes: List[RecordOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def written(self) -> List[Written]:
        return [o for o in self.outcomes if isinstance(o, Written)]

    @property
    def skipped(self) -> List[Skipped]:
        return [o for o in self.outcomes if isinstance(o, Skipped)]

    @property
    def tagging_failed(self) -> List[TaggingFailed]:
        return [o for o in self.outcomes if isinstance(o, TaggingFailed)]


# === NAMING ===
def parse_date(date_str) -> Optional[datetime]:
    """Parse dates like "9/6/24" or "09/06/2024". Returns None if no format matches."""
    if not isinstance(date_str, str):
        return None
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(date_str, fmt)
        except ValueError:
            continue
        if fmt.endswith('%y') and parsed.year > TWO_DIGIT_YEAR_MAX:
            parsed = parsed.replace(year=parsed.year - 100)
        return parsed
    return None


class FilenameRegistry:
    """Tracks base names used during one run so repeated dates get " (2)", " (3)", ..."""

    def __init__(self):
        self.counts: Dict[str, int] = {}

    def claim(self, base_name: str) -> str:
        if base_name in self.counts:
            self.counts[base_name] += 1
            return f"{base_name} ({self.counts[base_name]})"
        self.counts[base_name] = 1
        return base_name


def resolve_extension(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid image URL: {url}")
    return Path(parsed.path).suffix or DEFAULT_EXTENSION


def default_output_dir() -> Path:
    return Path.home() / 'Pictures' / PICTURES_SUBFOLDER


# === DOWNLOAD ===
def download_image(session, url) -> bytes:
    response = session.get(url, timeout=DOWNLOAD_TIMEOUT)
    response.raise_for_status()
    return response.content


def set_creation_time(path: Path, dt: datetime):
    """Set the file's creation (birth) time where the platform allows it.

    Windows uses win32-setctime, macOS uses SetFile from the Xcode Command Line Tools.
    Other platforms have no API for it and keep only the modification time.
    """
    if sys.platform == 'win32':
        from win32_setctime import setctime
        setctime(path, dt.timestamp())
    elif sys.platform == 'darwin':
        date_str = dt.strftime("%m/%d/%Y %H:%M:%S")
        try:
            result = subprocess.run(["SetFile", "-d", date_str, str(path)], capture_output=True)
        except FileNotFoundError:
            log_warn(f"SetFile not available, creation date of {path.name} left unchanged")
            return
        if result.returncode != 0:
            raise OSError(f"SetFile error for {path}: {result.stderr.decode(errors='replace').strip()}")


def set_file_timestamps(path: Path, dt: datetime):
    set_creation_time(path, dt)
    ts = dt.timestamp()  # naive datetimes are taken as local time
    os.utime(path, (ts, ts))


def stamp_file(path: Path, dt: datetime) -> Optional[str]:
    """Apply the record date to the file. Returns the error message if the OS refused it."""
    try:
        set_file_timestamps(path, dt)
    except (OSError, OverflowError, ValueError) as e:
        # e.g. Windows rejects dates before 1970
        log_warn(f"Failed to set file dates for {path}: {e}")
        return str(e)
    return None


def process_record(record: ImageRecord, output_dir: Path, registry: FilenameRegistry, session, dry_run=False) -> RecordOutcome:
    image_date = parse_date(record.date)
    if image_date is None:
        log_warn(f"Invalid date format: {record.date}. Skipping this entry.")
        return Skipped(record, f"Invalid date format: {record.date}")

    filename = registry.claim(image_date.strftime('%Y-%m-%d'))
    extension = resolve_extension(record.link)
    file_path = Path(output_dir) / f"{filename}{extension}"

    if dry_run:
        log_info(f"[DRY-RUN] Would download {record.link} to {file_path}")
        return Planned(record, file_path)

    log_info(f"Downloading {record.link} to {file_path}")
    image_bytes = download_image(session, record.link)
    file_path.write_bytes(image_bytes)

    stamp_file(file_path, image_date)

    try:
        set_exif_dates(file_path, image_date)
    except Exception as e:
        log_warn(f"Failed to set EXIF data for {file_path}: {e}")
        outcome = TaggingFailed(record, file_path, str(e))
    else:
        outcome = Written(record, file_path)

    # Re-saving the image updates mtime
    outcome.timestamp_error = stamp_file(file_path, image_date)
    return outcome


# === MAIN ===
def run(input_path=INPUT_FILE, output_dir=None, dry_run=False, session=None) -> RunReport:
    report = RunReport()
    output_dir = Path(output_dir) if output_dir else default_output_dir()
    own_session = session is None
    if own_session:
        session = requests.Session()

    try:
        if not dry_run:
            output_dir.mkdir(parents=True, exist_ok=True)

        records = load_records(input_path)
        registry = FilenameRegistry()

        for record in tqdm(records, desc="Images", unit="img"):
            report.outcomes.append(process_record(record, output_dir, registry, session, dry_run=dry_run))

        log_info("All images have been processed successfully.")
    except Exception as e:
        log_error(f"An error occurred: {e}", exc_info=True)
        report.error = str(e)
    finally:
        if own_session:
            session.close()

    return report


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Download dated images listed in a JSON file")
    parser.add_argument("--input", type=str, default=INPUT_FILE, help="JSON file with date/title/link entries")
    parser.add_argument("--output", type=str, default=None, help=f"Target folder (default: ~/Pictures/{PICTURES_SUBFOLDER})")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be downloaded without writing anything")
    parser.add_argument("--log-file", type=str, default=LOG_FILE, help="Path of the log file")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    configure_logging(args.log_file)
    run(args.input, args.output, dry_run=args.dry_run)


if __name__ == "__main__":
    main()
