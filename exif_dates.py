# usage: python3 exif_dates.py "/your/image.jpg"
# Prints the EXIF date tags of an image (DateTime, DateTimeOriginal, DateTimeDigitized)

import io
import sys
from pathlib import Path
from PIL import Image
from PIL.ExifTags import TAGS
import piexif

EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"
EXIF_IFD_POINTER = 0x8769
DATE_TAGS = ('DateTime', 'DateTimeOriginal', 'DateTimeDigitized')


def empty_exif():
    return {"0th": {}, "Exif": {}, "GPS": {}, "Interop": {}, "1st": {}, "thumbnail": None}


def set_exif_dates(image_path, new_datetime):
    """Write DateTime, DateTimeOriginal and DateTimeDigitized and re-save the image in place.

    The whole image is re-encoded in its own format, keeping its ICC profile and,
    for JPEG, its quality settings. Errors are left to the caller.
    """
    dt_str = new_datetime.strftime(EXIF_DATE_FORMAT)
    image_path = Path(image_path)

    # Read into memory so the same path can be overwritten on save
    data = image_path.read_bytes()
    with Image.open(io.BytesIO(data)) as img:
        # PNG may carry eXIf after the image data
        img.load()
        exif_raw = img.info.get("exif")
        exif_dict = piexif.load(exif_raw) if exif_raw else empty_exif()

        exif_dict["0th"][piexif.ImageIFD.DateTime] = dt_str.encode()
        exif_dict["Exif"][piexif.ExifIFD.DateTimeOriginal] = dt_str.encode()
        exif_dict["Exif"][piexif.ExifIFD.DateTimeDigitized] = dt_str.encode()
        exif_bytes = piexif.dump(exif_dict)

        save_options = {"exif": exif_bytes}
        if img.info.get("icc_profile"):
            save_options["icc_profile"] = img.info["icc_profile"]
        if img.format == "JPEG":
            # Reuse the source quantization tables and subsampling
            save_options["quality"] = "keep"
            save_options["subsampling"] = "keep"

        img.save(image_path, format=img.format, **save_options)
    return dt_str


def get_exif_dates(image_path):
    """Return the EXIF date tags present in the image, keyed by tag name."""
    dates = {}
    with Image.open(image_path) as img:
        exif = img.getexif()
        tags = dict(exif.items())
        tags.update(exif.get_ifd(EXIF_IFD_POINTER))
        for tag_id, value in tags.items():
            tag = TAGS.get(tag_id, tag_id)
            if tag in DATE_TAGS:
                if isinstance(value, bytes):
                    value = value.decode(errors='replace')
                dates[tag] = value.rstrip('\x00')
    return dates


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python3 exif_dates.py <image>", file=sys.stderr)
        sys.exit(1)
    for tag, value in get_exif_dates(sys.argv[1]).items():
        print(f"{tag}: {value}")
