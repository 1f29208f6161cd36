"""Predefined negotiation message templates"""

from typing import Dict, List, Optional

from negotiation_engine.error_handling import InvalidMessage

MESSAGE_TEMPLATES: Dict[str, str] = {
    "interested": "I'm interested in this project. Can we discuss the details?",
    "lower_price": "Would you consider a lower price for this project?",
    "best_offer": "What's your best offer for this project?",
    "custom_request": "I have some specific requirements. Can we discuss customizations?",
    "timeline_question": "What's the expected timeline for this project?",
    "feature_question": "Can you provide more details about the features included?",
}


def list_templates() -> List[Dict[str, str]]:
    return [{"id": key, "content": content} for key, content in MESSAGE_TEMPLATES.items()]


def resolve_message(text: Optional[str], template_id: Optional[str]) -> Optional[str]:
    """
    Resolve free text or a template id to the message text.

    A template takes precedence over free text.

    Raises:
        InvalidMessage: If the template id is unknown
    """
    if template_id is not None:
        if template_id not in MESSAGE_TEMPLATES:
            raise InvalidMessage(f"Unknown message template: {template_id}")
        return MESSAGE_TEMPLATES[template_id]
    return text
