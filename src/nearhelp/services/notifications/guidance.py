"""
Canned crisis guidance
"""

from typing import Any, Dict, List, Optional


GUIDANCE: Dict[str, List[str]] = {
    'medical': [
        'Check responsiveness and breathing immediately.',
        'Clear nearby hazards and keep airway open.',
        'Assign one person to call emergency services with exact location.',
    ],
    'breakdown': [
        'Move vehicle and people away from active lanes if safe.',
        'Turn on hazard lights and set a visible warning marker.',
        'Request nearby assistance and tow support.',
    ],
    'gas_leak': [
        'Do not use flames or electrical switches near leak area.',
        'Evacuate people upwind and increase ventilation if possible.',
        'Call emergency gas service and fire department immediately.',
    ],
    'other': [
        'Prioritize immediate life safety and scene assessment.',
        'Share concise details with responders and dispatch.',
        'Track status updates every 1-2 minutes until stable.',
    ],
}

NEXT_PROMPT = 'After resolution, capture what worked and what gaps were observed.'


def crisis_assist(crisis_type: Optional[str] = None, context: Optional[str] = None) -> Dict[str, Any]:
    """Guidance steps for ``crisis_type``; unknown types get the generic list"""
    crisis_type = crisis_type or 'other'
    steps = GUIDANCE.get(crisis_type, GUIDANCE['other'])

    return {
        'crisisType': crisis_type,
        'guidance': list(steps),
        'summary': f"Incident type: {crisis_type}. Context: {context or 'No extra context provided.'}",
        'nextPrompt': NEXT_PROMPT,
        'source': 'local-fallback',
    }
