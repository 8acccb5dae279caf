"""
httpdouble Static Mock Definitions

Loads mocks declared in YAML files, for standalone servers that should start
with a fixed set of mocks.

File format (one or more YAML documents, each an entry or a list of entries):

    when:
      method: GET
      path: /health
    then:
      status: 200
      json: {status: ok}
"""

import logging
from pathlib import Path
from typing import Any, List, Tuple, Union

import yaml

from .errors import InvalidExpectation
from .matcher import Expectation
from .models import ResponseSpec


logger = logging.getLogger("httpdouble.mock.static")

MOCK_FILE_SUFFIXES = ('.yaml', '.yml')

Definition = Tuple[Expectation, ResponseSpec]


def _parse_entry(entry: Any, source: str) -> Definition:
    if not isinstance(entry, dict):
        raise InvalidExpectation(f"{source}: each mock must be a mapping with 'when' and 'then'")
    unknown = set(entry) - {'when', 'then'}
    if unknown:
        raise InvalidExpectation(f"{source}: unknown keys {', '.join(sorted(map(str, unknown)))}")
    try:
        expectation = Expectation.from_dict(entry.get('when') or {})
        response = ResponseSpec.from_dict(entry.get('then') or {})
    except InvalidExpectation as e:
        raise InvalidExpectation(f"{source}: {e.message}") from e
    return expectation, response


def load_mock_file(path: Union[str, Path]) -> List[Definition]:
    """
    Parse every mock definition in one YAML file.

    Raises:
        InvalidExpectation: Invalid YAML or invalid definition, naming the file
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            documents = list(yaml.safe_load_all(f))
    except yaml.YAMLError as e:
        raise InvalidExpectation(f"{path}: invalid YAML: {e}") from e

    definitions = []
    for index, document in enumerate(documents):
        if document is None:
            continue
        entries = document if isinstance(document, list) else [document]
        for position, entry in enumerate(entries):
            definitions.append(_parse_entry(entry, f"{path} (document {index + 1}, entry {position + 1})"))
    return definitions


def load_mock_dir(directory: Union[str, Path]) -> List[Definition]:
    """
    Parse every ``*.yaml`` / ``*.yml`` file of a directory, in file name order.

    Raises:
        InvalidExpectation: If the directory does not exist or a file is invalid
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise InvalidExpectation(f"Static mock directory not found: {directory}")

    definitions = []
    for path in sorted(directory.iterdir()):
        if path.is_file() and path.suffix.lower() in MOCK_FILE_SUFFIXES:
            loaded = load_mock_file(path)
            logger.info(f"Loaded {len(loaded)} static mocks from {path}")
            definitions.extend(loaded)
    return definitions


def load_static_mocks(registry, directory: Union[str, Path]) -> List[int]:
    """
    Register every mock found in a directory.

    All files are parsed before anything is registered, so an invalid file
    leaves the registry untouched.

    Returns:
        Ids of the created mocks
    """
    definitions = load_mock_dir(directory)
    return [registry.create(expectation, response) for expectation, response in definitions]
