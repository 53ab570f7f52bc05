"""Bundle files and the sources they are fetched from."""

import json
import logging
import os
import shutil
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import yaml

from bundle_engine.core.errors import (
    BundleNotFound,
    InvalidApplicationError,
    SourceError,
    SourceNotImplemented,
    UnknownSourceTypeError,
)
from bundle_engine.domain.models import Application, LATEST
from bundle_engine.domain.schemas import from_document

logger = logging.getLogger(__name__)


APP_FILENAME = "app.yaml"
IMAGES_FILENAME = "images.tar"
BUNDLE_EXTENSION = ".kb"


# ============================================
# Bundle identity and archive
# ============================================

@dataclass
class BundleRef:
    name: str
    version: str = LATEST

    @property
    def filename(self) -> str:
        return f"{self.name}-{self.version}{BUNDLE_EXTENSION}"

    @property
    def metadata_filename(self) -> str:
        return f"{self.name}.json"


def publish_metadata(version: str, size: int) -> Dict:
    """The "latest version" side file written next to published bundles."""
    return {"latest": {"version": version, "size": str(size)}}


def latest_version(metadata: Dict) -> str:
    try:
        return metadata["latest"]["version"]
    except (KeyError, TypeError) as e:
        raise SourceError("metadata file has no latest version") from e


class BundleFile:
    """
    An opened bundle archive: app.yaml plus an optional images.tar.

    Use as a context manager, or call close() when done.
    """

    def __init__(self, path: str):
        self.path = path
        try:
            self._archive = zipfile.ZipFile(path)
        except (OSError, zipfile.BadZipFile) as e:
            raise SourceError(f"couldn't open bundle '{path}'") from e

        self.size = os.path.getsize(path)
        document = self._read_document()
        self.name = str(document.get("name", ""))
        self.version = str(document.get("version", ""))

    def _read_document(self) -> Dict:
        try:
            raw = self._archive.read(APP_FILENAME)
        except KeyError as e:
            raise InvalidApplicationError(f"bundle '{self.path}' has no {APP_FILENAME}") from e

        try:
            document = yaml.safe_load(raw) or {}
        except yaml.YAMLError as e:
            raise InvalidApplicationError(f"couldn't parse {APP_FILENAME} in '{self.path}'") from e

        if not isinstance(document, dict):
            raise InvalidApplicationError(f"{APP_FILENAME} in '{self.path}' is not a mapping")
        return document

    @property
    def ref(self) -> BundleRef:
        return BundleRef(name=self.name, version=self.version)

    @property
    def filename(self) -> str:
        return self.ref.filename

    @property
    def metadata_filename(self) -> str:
        return self.ref.metadata_filename

    def application(self, namespace: str = "default") -> Application:
        """Parse, validate and default the bundled application definition."""
        app = from_document(Application, self._read_document())
        app.namespace = namespace
        app.validate()
        app.apply_defaults()
        return app

    def has_images(self) -> bool:
        return IMAGES_FILENAME in self._archive.namelist()

    def open_images(self):
        """Binary stream over images.tar."""
        if not self.has_images():
            raise SourceError(f"bundle '{self.filename}' has no {IMAGES_FILENAME}")
        return self._archive.open(IMAGES_FILENAME)

    def close(self) -> None:
        self._archive.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __str__(self) -> str:
        return f"{self.name}-{self.version}"


# ============================================
# Sources
# ============================================

class Source(ABC):

    @abstractmethod
    def get(self, ref: BundleRef) -> BundleFile:
        """Fetch a bundle. Raises BundleNotFound when this source lacks it."""
        raise NotImplementedError

    @abstractmethod
    def put(self, bundle: BundleFile) -> None:
        raise NotImplementedError


class DirectorySource(Source):
    """Bundles laid out as <path>/<section>/<release>/<name>-<version>.kb."""

    def __init__(self, path: str, options: Optional[Dict[str, str]] = None, section: str = "", release: str = ""):
        self.path = path
        self.options = options or {}
        self.section = section
        self.release = release

    @property
    def folder(self) -> str:
        return os.path.join(self.path, self.section, self.release)

    def get(self, ref: BundleRef) -> BundleFile:
        version = ref.version
        if version == LATEST:
            metadata_path = os.path.join(self.folder, ref.metadata_filename)
            try:
                with open(metadata_path, encoding="utf-8") as f:
                    metadata = json.load(f)
            except FileNotFoundError:
                raise BundleNotFound(f"no metadata file '{metadata_path}'")
            except (OSError, ValueError) as e:
                raise SourceError(f"couldn't read metadata file '{metadata_path}'") from e
            version = latest_version(metadata)

        full_path = os.path.join(self.folder, BundleRef(ref.name, version).filename)
        if not os.path.exists(full_path):
            raise BundleNotFound(f"bundle '{full_path}' not found")
        return BundleFile(full_path)

    def put(self, bundle: BundleFile) -> None:
        os.makedirs(self.folder, mode=0o700, exist_ok=True)
        full_path = os.path.join(self.folder, bundle.filename)
        try:
            shutil.copyfile(bundle.path, full_path)
        except OSError as e:
            raise SourceError(f"couldn't write bundle to '{full_path}'") from e

        # TODO: merge with the existing metadata instead of overwriting it
        metadata_path = os.path.join(self.folder, bundle.metadata_filename)
        with open(metadata_path, "w", encoding="utf-8") as f:
            json.dump(publish_metadata(bundle.version, bundle.size), f, indent=2)

        logger.info(f"[source] published {bundle} to {self.folder}")


class MultiFileSource(Source):
    """Looks bundles up by filename in an explicit list of files."""

    def __init__(self, files: List[str]):
        self.files = list(files)

    def get(self, ref: BundleRef) -> BundleFile:
        for file in self.files:
            if os.path.basename(file) == ref.filename:
                return BundleFile(file)
        raise BundleNotFound(f"bundle '{ref.filename}' not in file list")

    def put(self, bundle: BundleFile) -> None:
        raise SourceNotImplemented("put is not supported by a file list source")


class MultiSource(Source):
    """Tries each source in order; the first hit wins."""

    def __init__(self, sources: List[Source]):
        self.sources = list(sources)

    def get(self, ref: BundleRef) -> BundleFile:
        for source in self.sources:
            try:
                return source.get(ref)
            except BundleNotFound:
                continue
        raise BundleNotFound(f"bundle '{ref.name}' version '{ref.version}' not found in any source")

    def put(self, bundle: BundleFile) -> None:
        raise SourceNotImplemented("put is not supported by a multi source")


def new_source(
    source_type: str,
    path: str,
    options: Optional[Dict[str, str]] = None,
    section: str = "",
    release: str = "",
) -> Source:
    if source_type == "directory":
        return DirectorySource(path, options, section, release)
    if source_type == "s3":
        # s3 imports this module
        from bundle_engine.bundles.s3 import S3Source

        return S3Source(path, options, section, release)
    raise UnknownSourceTypeError(f"unrecognized source: {source_type}")
