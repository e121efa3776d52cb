"""
Spell (declarative transition template) construction and rendering
"""

from dataclasses import replace
from typing import Any, Dict, Optional

import yaml

from .models import AcceptedTransition, DecodedTransaction, Outpoint, StreamState

SPELL_VERSION = 4
APP_TAG = '$00'

Spell = Dict[str, Any]


def app_spec(app_id: str, app_vk: str) -> str:
    return f"s/{app_id}/{app_vk}"


def build_create_spell(accepted: AcceptedTransition, genesis: Outpoint,
                       app_vk: str, stream_address: str) -> Spell:
    """
    Spell creating the stream: spends the genesis outpoint and locks
    total_amount under the stream address with the initial state.
    """
    state = accepted.state
    return {
        'version': SPELL_VERSION,
        'apps': {APP_TAG: app_spec(state.identity.hex(), app_vk)},
        'private_inputs': {APP_TAG: accepted.transition.now},
        'ins': [
            {'utxo_id': str(genesis), 'charms': {}},
        ],
        'outs': [
            {
                'address': stream_address,
                'sats': state.total_amount,
                'charms': {APP_TAG: state.to_charm()},
            },
        ],
    }


def build_claim_spell(accepted: AcceptedTransition, stream_outpoint: Outpoint,
                      app_vk: str, stream_address: str, beneficiary_address: str) -> Spell:
    """
    Spell claiming from the stream: spends the current stream outpoint,
    re-locks remaining_amount with the new state and pays claimed_delta
    to the beneficiary. A zero-delta claim has no payout output.
    """
    transition = accepted.transition
    previous = transition.previous_state
    state = accepted.state
    outs = [
        {
            'address': stream_address,
            'sats': accepted.remaining_amount,
            'charms': {APP_TAG: state.to_charm()},
        },
    ]
    if accepted.claimed_delta > 0:
        outs.append({'address': beneficiary_address, 'sats': accepted.claimed_delta})
    return {
        'version': SPELL_VERSION,
        'apps': {APP_TAG: app_spec(state.identity.hex(), app_vk)},
        'private_inputs': {APP_TAG: transition.now},
        'ins': [
            {'utxo_id': str(stream_outpoint), 'charms': {APP_TAG: previous.to_charm()}},
        ],
        'outs': outs,
    }


def render_spell(spell: Spell) -> str:
    """YAML text sent to the prover and kept for diagnostics"""
    return yaml.safe_dump(spell, sort_keys=False)


def declared_state(spell: Spell, index: int) -> Optional[StreamState]:
    """State the spell declares for output ``index``; None when absent or malformed"""
    outs = spell.get('outs') or []
    if index >= len(outs):
        return None
    try:
        charm = (outs[index].get('charms') or {}).get(APP_TAG)
        if charm is None:
            return None
        return StreamState.from_charm(charm)
    except (AttributeError, KeyError, TypeError, ValueError):
        return None


def attach_spell_states(tx: DecodedTransaction, spell: Optional[Spell]) -> DecodedTransaction:
    """
    Attach the charm state the proven spell declares to the decoded
    output at the same index. The prover keeps spell outputs first and
    in order; anything after them (change) carries no state.

    ``spell`` must be the one the prover reports it embedded, not the
    request we sent. A state the decoder already supplied is kept.
    """
    if not spell:
        return tx
    outputs = tuple(
        out if out.state is not None else replace(out, state=declared_state(spell, out.index))
        for out in tx.outputs
    )
    return replace(tx, outputs=outputs)
