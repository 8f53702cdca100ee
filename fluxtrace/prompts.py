"""Prompt templates for the trace analysis and the format-repair request."""

from __future__ import annotations

import json
from typing import Any, Dict, Sequence

from .models import ApiEvidence

ANALYSIS_PROMPT = """You are a senior Vue engineer who explains reactive data flow.
Reconstruct where the data shown by a clicked DOM element comes from, based
only on the code below.

The user clicked this element:
```html
{target_element}
```

Answer:
1. Data source: does the element show API data, Vuex store data or static data?
2. Data flow: which variables and components does the value pass through?
3. Key code: which snippets decide what this element renders?

Rules:
- Describe the flow like an engineer explaining code to a colleague; skip filler.
- For a single component, state the source and how it is used.
- Mention props only when the value really crosses component boundaries.
- Only call the source an API when the call evidence below contains a real URL.
- Symbolic endpoints such as $apis.user.list are not URLs.
- confidence: 80-100 with clear API/Store evidence, 40-60 when inferred, below 40 when guessing.
- suggestNextStep: a concrete follow-up when the data comes from the store or needs
  more tracing, otherwise null.

Example (store data source):
{{"fullLinkTrace": "lang is mapped from the setting module with mapState and selects the locale.",
 "dataSource": {{"type": "Store", "endpoint": null, "method": "UNKNOWN"}},
 "componentAnalysis": [{{"file": "Header.vue", "role": "display component", "dataMapping": "store.setting.lang -> computed.lang"}}],
 "variableAnalysis": {{"content": {{"variables": ["lang"], "summary": "rendered locale"}},
                       "attributes": {{"variables": [], "summary": ""}},
                       "conditionals": {{"variables": [], "summary": ""}}}},
 "confidence": 90, "relatedVariables": ["lang"],
 "suggestNextStep": "Check how lang is initialised in src/store/modules/setting.js"}}

Code along the trace, from the data source down to the clicked element:
---
{code}
---

Extracted network-call evidence:
{api_info}

Return ONLY a JSON object matching this schema, without Markdown fences:
{schema}
"""

REPAIR_PROMPT = """You are a strict JSON repairer. Turn the output below into a JSON
object that matches the schema exactly.

Rules:
1. Fix formatting only (quotes, stray text, missing fields). Do not add new facts.
2. Output pure JSON with no explanation and no Markdown fences.

Schema:
{schema}

Output to repair:
{bad_output}
"""

NO_API_EVIDENCE = "No explicit network-call evidence was found in the traced code."


def format_api_evidence(evidence: Sequence[ApiEvidence]) -> str:
    if not evidence:
        return NO_API_EVIDENCE
    return json.dumps([item.to_dict() for item in evidence], indent=2, ensure_ascii=False)


def build_analysis_prompt(target_element: str, code: str, evidence: Sequence[ApiEvidence], schema: Dict[str, Any]) -> str:
    return ANALYSIS_PROMPT.format(
        target_element=target_element,
        code=code,
        api_info=format_api_evidence(evidence),
        schema=json.dumps(schema, indent=2),
    )


def build_repair_prompt(bad_output: str, schema: Dict[str, Any]) -> str:
    return REPAIR_PROMPT.format(schema=json.dumps(schema, indent=2), bad_output=bad_output)
