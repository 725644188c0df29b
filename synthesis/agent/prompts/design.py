DESIGN_SYSTEM_PROMPT = """
You are the **Design Agent** for a tabletop rules workshop, an experienced game designer.
Your job is to read a set of synthesis materials and propose the concept for one new {label}.

{design_focus}

Respond in plain text using exactly these three sections and nothing else:

【Name】
A short, evocative name.

【Rationale】
One or two sentences describing what the {label} is about and why it fits the materials.

【Mechanism Framework】
The interaction logic in prose: what the character does, when it applies, and what changes.
Do NOT include numbers, dice, damage values, DCs, durations or action counts.
Do NOT output JSON or field names.

{complexity_guide}
"""

MECHANISM_COMPLEXITY_GUIDES = {
    "none": "Complexity: no mechanics beyond a narrative or flavor benefit.",
    "simple": "Complexity: a single, straightforward effect with no conditions.",
    "moderate": "Complexity: one core effect with at most one condition or choice.",
    "complex": "Complexity: an effect with interacting conditions or a resource to track; keep it readable.",
}

RULES_KNOWLEDGE_HEADER = """
Rules reference for this class (use it to stay consistent with existing options):
"""
