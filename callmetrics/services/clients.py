"""
Client universe, display names and client selector resolution.

A client selector names which clients a request covers:
- a single client id, e.g. "exeter"
- "all": every available client
- "non-<client>": every available client except one, e.g. "non-westlake"

The available universe comes from the data store's listAvailableClients
collaborator, restricted to KNOWN_CLIENTS.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from callmetrics.core.exceptions import InvalidRequestError
from callmetrics.models.enums import ClientSelectorKind


KNOWN_CLIENTS = (
    'exeter', 'aca', 'cps', 'ally', 'autonation', 'cac', 'carmax',
    'creditone', 'finbe', 'ftb', 'gm', 'gofi', 'maf', 'prestige',
    'strike', 'tenet', 'tricolor', 'uacc', 'universal', 'westlake', 'yendo',
)

CLIENT_DISPLAY_NAMES = {
    'exeter': 'EXETER',
    'aca': 'ACA',
    'cps': 'CPS',
    'ally': 'ALLY',
    'autonation': 'Autonation',
    'cac': 'CAC',
    'carmax': 'CarMax',
    'creditone': 'CreditOne',
    'finbe': 'FINBE',
    'ftb': 'FTB',
    'gm': 'GM',
    'gofi': 'GoFi',
    'maf': 'MAF',
    'prestige': 'Prestige',
    'strike': 'Strike',
    'tenet': 'Tenet',
    'tricolor': 'Tricolor',
    'uacc': 'UACC',
    'universal': 'Universal',
    'westlake': 'Westlake',
    'yendo': 'Yendo',
    'all': 'All Clients',
    'total': 'Total',
}

ALL_SELECTOR = 'all'
EXCLUDE_PREFIX = 'non-'

# Client ids are interpolated into table names, so they must stay identifiers
CLIENT_ID_PATTERN = re.compile(r'^[a-z0-9_]+$')


def is_valid_client_id(client_id: str) -> bool:
    return bool(CLIENT_ID_PATTERN.match(client_id or ''))


def get_client_display_name(client: str) -> str:
    """Display name for a client id or selector; unknown ids are upper-cased."""
    if client in CLIENT_DISPLAY_NAMES:
        return CLIENT_DISPLAY_NAMES[client]
    if client.startswith(EXCLUDE_PREFIX):
        excluded = client[len(EXCLUDE_PREFIX):]
        return f"All (Excl. {get_client_display_name(excluded)})"
    return client.upper()


@dataclass(frozen=True)
class ClientSelector:
    """Parsed client selector."""
    kind: ClientSelectorKind
    client: Optional[str] = None

    @property
    def raw(self) -> str:
        if self.kind is ClientSelectorKind.ALL:
            return ALL_SELECTOR
        if self.kind is ClientSelectorKind.ALL_EXCLUDING:
            return f"{EXCLUDE_PREFIX}{self.client}"
        return self.client

    @property
    def display_name(self) -> str:
        return get_client_display_name(self.raw)

    @property
    def is_multi_client(self) -> bool:
        return self.kind is not ClientSelectorKind.SINGLE

    def resolve(self, available: Iterable[str]) -> List[str]:
        """
        Clients covered by this selector, given the available universe.

        A single client must be a known client but need not be listed as
        available; an available client without data for a window contributes
        zeros.

        Raises:
            InvalidRequestError: If a single-client selector names an unknown client.
        """
        if self.kind is ClientSelectorKind.SINGLE:
            _require_known(self.client)
            return [self.client]
        clients = sorted(set(available))
        if self.kind is ClientSelectorKind.ALL_EXCLUDING:
            clients = [c for c in clients if c != self.client]
        return clients


def _require_known(client: str) -> None:
    if client not in KNOWN_CLIENTS:
        raise InvalidRequestError(f"Unknown client '{client}'")


def parse_client_selector(value: Optional[str]) -> ClientSelector:
    """
    Parse "all", "non-<client>" or a single client id.

    Raises:
        InvalidRequestError: If the value is empty, malformed, or names a
            client outside KNOWN_CLIENTS.
    """
    text = (value or '').strip().lower()
    if not text:
        raise InvalidRequestError("Client selector must not be empty")

    if text == ALL_SELECTOR:
        return ClientSelector(kind=ClientSelectorKind.ALL)

    if text.startswith(EXCLUDE_PREFIX):
        excluded = text[len(EXCLUDE_PREFIX):]
        if not is_valid_client_id(excluded):
            raise InvalidRequestError(f"Invalid client in selector '{value}'")
        _require_known(excluded)
        return ClientSelector(kind=ClientSelectorKind.ALL_EXCLUDING, client=excluded)

    if not is_valid_client_id(text):
        raise InvalidRequestError(f"Invalid client id '{value}'")
    _require_known(text)
    return ClientSelector(kind=ClientSelectorKind.SINGLE, client=text)


def filter_known_clients(clients: Iterable[str]) -> List[str]:
    """Keep only ids in KNOWN_CLIENTS, preserving KNOWN_CLIENTS order."""
    present = set(clients)
    return [c for c in KNOWN_CLIENTS if c in present]
