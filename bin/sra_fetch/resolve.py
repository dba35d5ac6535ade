"""Resolve sample and run accessions into sample descriptors.

Accessions are classified by their third character (``SRR``/``ERR``/``DRR``
are runs, ``SRS``/``SAMN``... are samples), looked up in batches through a
metadata resolver, and merged into one descriptor per sample.
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Iterable, Iterator, Protocol

import requests

from sra_fetch.models import RunMetadata, SampleDescriptor, SampleMetadata

logger = logging.getLogger(__name__)

EUTILS_BASE = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
DEFAULT_BATCH_SIZE = 100
FETCH_PAGE_SIZE = 500


# ---------------------------------------------------------------------------
# Accession classification
# ---------------------------------------------------------------------------


class MetadataError(Exception):
    """Raised when an E-utilities reply cannot be understood."""


class InvalidAccessionError(ValueError):
    """Raised for an identifier too short to be a sample or run accession."""


class AccessionKind(Enum):
    SAMPLE = "sample"
    RUN = "run"

    def key_of(self, meta: SampleMetadata) -> str:
        """Return the ID an experiment package is filed under for this kind."""
        return meta.sample_id if self is AccessionKind.SAMPLE else meta.run_id


def classify_accession(accession: str) -> AccessionKind:
    if len(accession) < 4:
        raise InvalidAccessionError(f'"{accession}" is not a valid sample or run ID.')
    return AccessionKind.RUN if accession[2] == "R" else AccessionKind.SAMPLE


def partition_accessions(accessions: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split accessions into sorted, de-duplicated ``(samples, runs)``."""
    samples: set[str] = set()
    runs: set[str] = set()
    for acc in accessions:
        acc = acc.strip()
        if classify_accession(acc) is AccessionKind.RUN:
            runs.add(acc)
        else:
            samples.add(acc)
    return sorted(samples), sorted(runs)


def batched(items: list[str], size: int) -> Iterator[list[str]]:
    if size < 1:
        raise ValueError("Batch size must be at least 1.")
    for start in range(0, len(items), size):
        yield items[start:start + size]


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class MetadataResolver(Protocol):
    def resolve(self, accessions: list[str]) -> list[SampleMetadata]: ...


def parse_experiment_packages(xml_text: str | bytes) -> list[SampleMetadata]:
    """Parse an SRA ``EXPERIMENT_PACKAGE_SET`` document."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise MetadataError(f"Malformed experiment package XML: {e}") from e
    result: list[SampleMetadata] = []
    for package in root.iter("EXPERIMENT_PACKAGE"):
        sample = package.find(".//SAMPLE")
        run_tags = package.findall(".//RUN_SET/RUN")
        if sample is None or not run_tags:
            logger.warning("Skipping experiment package without sample or runs.")
            continue
        runs = [
            RunMetadata(tag.get("accession", ""), int(tag.get("total_spots") or 0))
            for tag in run_tags
        ]
        title = package.findtext(".//EXPERIMENT/TITLE") or package.findtext(".//SAMPLE/TITLE") or ""
        paired = package.find(".//LIBRARY_LAYOUT/PAIRED") is not None
        result.append(SampleMetadata(
            sample_id=sample.get("accession", ""),
            run_id=runs[0].accession,
            title=title.strip(),
            paired=paired,
            runs=runs,
        ))
    return result


class NcbiResolver:
    """Look up SRA experiment packages through the NCBI E-utilities."""

    def __init__(
        self,
        email: str | None = None,
        api_key: str | None = None,
        tool: str = "sra-fetch",
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.email = email
        self.api_key = api_key
        self.tool = tool
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, endpoint: str, params: dict) -> requests.Response:
        params = dict(params)
        params.setdefault("tool", self.tool)
        if self.email:
            params.setdefault("email", self.email)
        if self.api_key:
            params.setdefault("api_key", self.api_key)
        r = self.session.get(f"{EUTILS_BASE}/{endpoint}", params=params, timeout=self.timeout)
        r.raise_for_status()
        return r

    def resolve(self, accessions: list[str]) -> list[SampleMetadata]:
        if not accessions:
            return []
        term = " OR ".join(f"{acc}[ACCN]" for acc in accessions)
        reply = self._get("esearch.fcgi", {
            "db": "sra", "term": term, "usehistory": "y", "retmode": "json",
        })
        try:
            search = reply.json()["esearchresult"]
            count = int(search.get("count", 0))
            history = (search["webenv"], search["querykey"]) if count else None
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise MetadataError(f"Unexpected esearch reply: {e!r}") from e
        result: list[SampleMetadata] = []
        for start in range(0, count, FETCH_PAGE_SIZE):
            page = self._get("efetch.fcgi", {
                "db": "sra",
                "WebEnv": history[0],
                "query_key": history[1],
                "retstart": start,
                "retmax": FETCH_PAGE_SIZE,
                "retmode": "xml",
            })
            result.extend(parse_experiment_packages(page.content))
        logger.debug("%d experiment packages returned for %d accessions.", len(result), len(accessions))
        return result


# ---------------------------------------------------------------------------
# Sample map
# ---------------------------------------------------------------------------


def merge_metadata(
    sample_map: dict[str, SampleDescriptor],
    records: Iterable[SampleMetadata],
    kind: AccessionKind,
) -> None:
    """File each record under its sample or run ID, merging repeat sightings."""
    for meta in records:
        key = kind.key_of(meta)
        sample = sample_map.get(key)
        if sample is None:
            sample_map[key] = SampleDescriptor.from_metadata(key, meta)
        else:
            sample.add_runs(meta)


def resolve_samples(
    accessions: Iterable[str],
    resolver: MetadataResolver,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, SampleDescriptor]:
    """Build the sample map for a list of sample and run accessions."""
    if batch_size < 1:
        raise ValueError("Batch size must be at least 1.")
    samples, runs = partition_accessions(accessions)
    logger.info("%d samples and %d runs found in input.", len(samples), len(runs))
    sample_map: dict[str, SampleDescriptor] = {}
    for kind, ids in ((AccessionKind.SAMPLE, samples), (AccessionKind.RUN, runs)):
        for batch in batched(ids, batch_size):
            merge_metadata(sample_map, resolver.resolve(batch), kind)
        logger.info("%d samples known after %s lookup.", len(sample_map), kind.value)
    return sample_map
