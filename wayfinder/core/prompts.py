# This file is the single source of truth for all AI prompt engineering.

LATERAL_CONNECTIONS_PROMPT = """
You are an assistant that generates interesting lateral connections between ideas.
You avoid simple hierarchies (broader/narrower) and trivial associations.
You focus on analogies, structural parallels, and surprising neighbors across domains.

Given the concept: "{concept}"

Generate {count} interesting lateral connections.

For each connection, return a JSON object with:
- "concept": the related concept (short phrase)
- "reason": 1-2 sentence explanation of the connection
- "type": one of ["analogy", "pattern", "contrast", "association"].

Respond with ONLY a valid JSON array, for example:
[
  {{
    "concept": "Mycelium networks",
    "reason": "Both route scarce resources through a decentralized web of links.",
    "type": "analogy"
  }},
  ...
]
""".strip()

DISCOVERY_PROMPTS_PROMPT = """
You are an assistant that helps a curious person explore the bridge between two ideas.

The user started from the concept: "{concept}"
They chose a lateral connection: "{connection_concept}"
Relationship type: {connection_type}
Why they are related: {connection_reason}

Write a short bridging text (2-3 sentences) that explains how the two ideas meet,
then 2 to 3 short reflective questions the user can answer in 1-5 minutes.
The questions should invite the user to notice patterns, compare ideas, or imagine
a concrete example. Do not give advice.

Respond with ONLY a valid JSON object in the following format:
{{
  "bridging_text": "How the two ideas meet.",
  "questions": ["First question?", "Second question?"]
}}
""".strip()

MICRO_DISCOVERY_PROMPT = """
You are an assistant that creates short reflective prompts. Each prompt should invite
the user to think, imagine, compare, or design something related to a concept.
Responses should be possible in 1-5 minutes.

The user is exploring the concept: "{concept}".

Create one short reflective activity prompt related to this concept. It should:
- Be answerable in 1-2 short paragraphs or bullet points.
- Encourage the user to notice patterns, compare ideas, or imagine a concrete example.

Return the prompt as plain text only.
""".strip()

SELF_NARRATIVE_PROMPT = """
You are an assistant that summarizes a person's curiosity patterns. Write in the second
person, in simple and concise language. Avoid flattery. Focus on describing how they tend
to explore, what themes they return to, and how they connect ideas.

Here is a summary of the user's activity:

{summary}

Based on this, write a short paragraph (3-5 sentences) describing how this person tends
to explore ideas, what they often notice, and the kinds of patterns they seem drawn to.
Do not give advice. Simply describe.
""".strip()

DEFAULT_PROMPTS = {
    "lateral-connections": LATERAL_CONNECTIONS_PROMPT,
    "discovery-prompts": DISCOVERY_PROMPTS_PROMPT,
    "micro-discovery": MICRO_DISCOVERY_PROMPT,
    "self-narrative": SELF_NARRATIVE_PROMPT,
}
