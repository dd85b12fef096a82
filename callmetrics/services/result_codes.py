"""
Call outcome classification taxonomy.

Every known result code is a member of the closed ResultCode enumeration.
Client-specific codes are listed in an explicit alias table and resolve to the
classification of their canonical code, so a client's own "wrong number" code
counts exactly like WRONGNO.

Funnel rules:
- connect: code is not a non-connect code
- rpc: code is neither non-connect nor non-RPC (so RPC implies connect)
- promise: promise-to-pay code, or the call's promise flag is set
- cash payment: completed payment today or successfully scheduled payment
  (a strict subset of promise codes)
- transfer: escalation / hand-off, independent of the other buckets

Codes are case-sensitive. A code outside the vocabulary (including None) is
treated like any other live conversation: connect and RPC, nothing else.

The membership frozensets at the bottom of the module are derived from the
classification table and are what the SQL layer filters on.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional


class ResultCode(str, Enum):
    """
    Canonical call result codes.

    Non-connect: NOA, ANX, VML, DEADAIR, BADNO, BLOCKED, BGN, DIALING, ATTEMPTING
    Non-RPC: TPI, WRONGNO, XCSN, NID
    Promise / payment: POP, FCC, FCC-F, PHO, PHO-F
    Transfer: XCSV, XCSN, XCSP, TDNC, SARI
    Authenticated without a promise: TTB, CBR
    """
    # Non-connect
    NOA = "NOA"                # no answer, mailbox full
    ANX = "ANX"                # answering machine
    VML = "VML"                # voicemail left
    DEADAIR = "DEADAIR"        # connected, no voice activity
    BADNO = "BADNO"            # not in service, dial error
    BLOCKED = "BLOCKED"        # blocked by pre-call compliance checks
    BGN = "BGN"
    DIALING = "DIALING"
    ATTEMPTING = "ATTEMPTING"

    # Connected, not the right party
    TPI = "TPI"                # third party
    WRONGNO = "WRONGNO"
    NID = "NID"

    # Promise-to-pay and payments
    POP = "POP"                # promise with amount and date, not secured
    FCC = "FCC"                # future payment scheduled
    FCC_F = "FCC-F"            # future payment API failed
    PHO = "PHO"                # payment taken today
    PHO_F = "PHO-F"            # payment API failed

    # Transfers
    XCSV = "XCSV"              # transfer after verification
    XCSN = "XCSN"              # transfer before verification
    XCSP = "XCSP"              # transfer after a promise
    TDNC = "TDNC"
    SARI = "SARI"

    # Authenticated, no promise
    TTB = "TTB"
    CBR = "CBR"


# Client-specific code -> canonical code
RESULT_CODE_ALIASES: Dict[str, ResultCode] = {
    "DAI": ResultCode.DEADAIR,      # Westlake
    "DIS": ResultCode.BADNO,        # Westlake
    "WRN": ResultCode.WRONGNO,      # Westlake
    "CHECKNO": ResultCode.WRONGNO,  # ACA
    "XCS": ResultCode.XCSV,         # CPS
    "XCSR": ResultCode.XCSV,        # CPS
}


@dataclass(frozen=True)
class OutcomeClassification:
    """Static funnel membership of a result code (before the promise flag is applied)."""
    is_connect: bool = True
    is_rpc: bool = True
    is_transfer: bool = False
    is_promise: bool = False
    is_cash_payment: bool = False


@dataclass(frozen=True)
class CallClassification:
    """Funnel membership of a single call."""
    is_connect: bool
    is_rpc: bool
    is_transfer: bool
    is_promise: bool
    is_cash_payment: bool


_NON_CONNECT = OutcomeClassification(is_connect=False, is_rpc=False)
_NON_RPC = OutcomeClassification(is_rpc=False)
_LIVE = OutcomeClassification()

_CLASSIFICATIONS: Dict[ResultCode, OutcomeClassification] = {
    ResultCode.NOA: _NON_CONNECT,
    ResultCode.ANX: _NON_CONNECT,
    ResultCode.VML: _NON_CONNECT,
    ResultCode.DEADAIR: _NON_CONNECT,
    ResultCode.BADNO: _NON_CONNECT,
    ResultCode.BLOCKED: _NON_CONNECT,
    ResultCode.BGN: _NON_CONNECT,
    ResultCode.DIALING: _NON_CONNECT,
    ResultCode.ATTEMPTING: _NON_CONNECT,

    ResultCode.TPI: _NON_RPC,
    ResultCode.WRONGNO: _NON_RPC,
    ResultCode.NID: _NON_RPC,
    ResultCode.XCSN: OutcomeClassification(is_rpc=False, is_transfer=True),

    ResultCode.POP: OutcomeClassification(is_promise=True),
    ResultCode.FCC: OutcomeClassification(is_promise=True, is_cash_payment=True),
    ResultCode.FCC_F: OutcomeClassification(is_promise=True),
    ResultCode.PHO: OutcomeClassification(is_promise=True, is_cash_payment=True),
    ResultCode.PHO_F: OutcomeClassification(is_promise=True),

    ResultCode.XCSV: OutcomeClassification(is_transfer=True),
    ResultCode.XCSP: OutcomeClassification(is_transfer=True, is_promise=True),
    ResultCode.TDNC: OutcomeClassification(is_transfer=True),
    ResultCode.SARI: OutcomeClassification(is_transfer=True),

    ResultCode.TTB: _LIVE,
    ResultCode.CBR: _LIVE,
}

# Payment API was invoked (successful or failed)
_PAYMENT_ATTEMPT_CANONICAL = frozenset({
    ResultCode.PHO, ResultCode.FCC, ResultCode.PHO_F, ResultCode.FCC_F,
})


# =============================================================================
# Lookup
# =============================================================================


def resolve_code(code: Optional[str]) -> Optional[ResultCode]:
    """Resolve a raw code (canonical or client alias) to its canonical ResultCode."""
    if code is None:
        return None
    alias = RESULT_CODE_ALIASES.get(code)
    if alias is not None:
        return alias
    try:
        return ResultCode(code)
    except ValueError:
        return None


def get_outcome_classification(code: Optional[str]) -> OutcomeClassification:
    canonical = resolve_code(code)
    if canonical is None:
        return _LIVE
    return _CLASSIFICATIONS[canonical]


def classify(code: Optional[str], promise_flag: bool = False) -> CallClassification:
    """
    Classify a single call into funnel buckets.

    Args:
        code: Raw result code, canonical or client alias. Case-sensitive.
        promise_flag: Agent-notated promise to pay, OR'd with the code signal.
    """
    outcome = get_outcome_classification(code)
    return CallClassification(
        is_connect=outcome.is_connect,
        is_rpc=outcome.is_rpc,
        is_transfer=outcome.is_transfer,
        is_promise=outcome.is_promise or bool(promise_flag),
        is_cash_payment=outcome.is_cash_payment,
    )


def is_payment_attempt(code: Optional[str]) -> bool:
    return resolve_code(code) in _PAYMENT_ATTEMPT_CANONICAL


# =============================================================================
# Derived Membership Sets (canonical codes plus aliases)
# =============================================================================


def _codes_where(predicate) -> FrozenSet[str]:
    canonical = {code for code, outcome in _CLASSIFICATIONS.items() if predicate(code, outcome)}
    aliases = {alias for alias, code in RESULT_CODE_ALIASES.items() if code in canonical}
    return frozenset({code.value for code in canonical} | aliases)


NON_CONNECT_CODES = _codes_where(lambda code, o: not o.is_connect)
# Connected but not the right party; excludes non-connect codes
NON_RPC_CODES = _codes_where(lambda code, o: o.is_connect and not o.is_rpc)
TRANSFER_CODES = _codes_where(lambda code, o: o.is_transfer)
PROMISE_CODES = _codes_where(lambda code, o: o.is_promise)
CASH_PAYMENT_CODES = _codes_where(lambda code, o: o.is_cash_payment)
PAYMENT_ATTEMPT_CODES = _codes_where(lambda code, o: code in _PAYMENT_ATTEMPT_CANONICAL)
