"""
prompt_builder.py — The Inspection Brief
========================================
Builds the instruction sent to the vision model alongside the photos.

The section headings below are the contract with report_formatter.py:
the model is told to emit them verbatim, and the formatter matches on them.
Bump PROMPT_VERSION whenever a heading or line format changes.
"""

PROMPT_VERSION = "v3"

# ── Section vocabulary ────────────────────────────────────────────────────────
IDENTIFICATION   = "🔍 APPLIANCE IDENTIFICATION"
AGE              = "📅 AGE ESTIMATE"
INDICATORS       = "🔧 KEY INDICATORS"
WARRANTY         = "⚖️ WARRANTY STATUS"
CONDITION        = "🛠️ CONDITION ASSESSMENT"
PROBLEMS         = "⚠️ COMMON PROBLEMS"
PARTS            = "🔧 TOP 5 REPLACEMENT PARTS"
VIDEOS           = "🎥 REPAIR VIDEO RESOURCES"
MAINTENANCE      = "💡 MAINTENANCE RECOMMENDATIONS"
NEXT_STEPS       = "💰 WHAT'S NEXT?"
QUESTION         = "❓ YOUR QUESTION"
SERVICES         = "🏢 PROFESSIONAL SERVICES"

SECTION_MARKERS = (
    IDENTIFICATION, AGE, INDICATORS, WARRANTY, CONDITION, PROBLEMS,
    PARTS, VIDEOS, MAINTENANCE, NEXT_STEPS, QUESTION, SERVICES,
)

# Line labels the formatter turns into info cards
WARRANTY_LABELS = ("Typical Warranty", "Current Status", "What's Usually Covered")
AGE_LABELS      = ("Estimated Age", "Manufacturing Period", "Confidence Level")

REPORT_TEMPLATE = f"""Please format your response with exactly the following sections and headings:

## {IDENTIFICATION}
**Type:** <specific appliance type>
**Brand:** <brand if visible, otherwise "Brand not clearly visible">
**Model:** <model number if visible, otherwise "Model number not visible">

## {AGE}
**Estimated Age:** <age range, e.g. 8-12 years old>
**Manufacturing Period:** <year range, e.g. 2012-2016>
**Confidence Level:** <High, Medium or Low>

## {INDICATORS}
- <2-3 specific design features or characteristics that helped determine the age>

## {WARRANTY}
**Typical Warranty:** <standard warranty period for this appliance type>
**Current Status:** <likely in or out of warranty based on age>
**What's Usually Covered:** <brief overview of typical coverage>

## {CONDITION}
**Overall Condition:** <Good, Fair or Poor>
**Potential Issues:** <visible concerns or common problems at this age>

## {PROBLEMS}
1. **<most common problem>** - <symptoms>
2. **<second problem>** - <symptoms>
3. **<third problem>** - <symptoms>
4. **<fourth problem>** - <symptoms>
5. **<fifth problem>** - <symptoms>

## {PARTS}
- **<part name>**: OEM# <manufacturer part number> - **Part Cost: $<low>-$<high>**
(five parts, one per line)

## {VIDEOS}
- **<specific repair task>** - YouTube: "<search term, e.g. dryer heating element replacement>"
(three repair tasks, one per line)

## {MAINTENANCE}
- <2-3 specific, actionable maintenance tips>

## {NEXT_STEPS}
- **Keep & Maintain:** <when it is worth maintaining>
- **Repair Needed:** <which repairs might be needed>
- **Consider Replacement:** <when it is approaching end of life>
"""

RULES = """Rules:
- Replace every <...> description with a concrete, realistic value. Never output angle brackets, square brackets or XX placeholders.
- Use real manufacturer part numbers for this brand and appliance type (for example WE11X10018 or WH13X10037 style numbers) and realistic dollar price ranges.
- Do not include any URLs or store links. The application builds shopping and video links from the part numbers and search terms you give.
- Keep the headings exactly as written, including the emoji."""


def _opening(image_count: int) -> str:
    if image_count <= 1:
        return (
            "Please analyze this appliance image and provide detailed information about:\n"
        )
    return (
        f"You are looking at {image_count} photos. They may show the same appliance from different "
        "angles or several different appliances. If they show different appliances, repeat every "
        "section for each one under a '### Appliance N' subheading.\n\n"
        "For each appliance provide detailed information about:\n"
    )


FOCUS = """
1. Appliance identification (type, brand, model if visible)
2. Age estimation based on design features
3. Warranty status assessment
4. Common problems for this appliance type and age
5. Top 5 replacement parts with real part numbers and costs
6. Repair video suggestions
"""


def build_prompt(image_count: int, question: str = "") -> str:
    """
    Deterministic: the same (image_count, question) always gives the same text.
    """
    question = (question or "").strip()

    prompt = _opening(image_count) + FOCUS + "\n" + REPORT_TEMPLATE

    if question:
        prompt += (
            f"\n## {QUESTION}\n"
            "<a direct, specific answer to the customer's question below>\n\n"
            f'Additionally, please answer this specific question from the customer: "{question}"\n'
        )

    prompt += "\n" + RULES
    return prompt
