"""Prompt templates for the upstream exploration workflow."""

REQUIREMENT_EXTRACTION_PROMPT = (
    "You are an LCA expert who identifies specific unit processes inside larger production chains.\n"
    "You receive a carbon footprint modelling requirement written in natural language.\n"
    "\n"
    "Extract:\n"
    "- process: the most specific unit process in the final production step of the main product, "
    'phrased like "bauxite mining, main product: bauxite".\n'
    "- technology: the process, method or technology named for that unit process.\n"
    "- location: the country or region where the process takes place.\n"
    "- time_frame: the year or period the requirement refers to.\n"
    "\n"
    "Be as granular as the text allows. Use an empty string when a facet is not mentioned.\n"
)

TABLE_SELECTION_PROMPT = (
    "You select worksheets from a workbook for a product specification.\n"
    "The context lists the available sheet names.\n"
    "\n"
    "Rules:\n"
    '- Choose exactly one process sheet (usually prefixed "process") and one flow sheet (usually prefixed "flow").\n'
    "- Prefer sheets whose names are semantically consistent with the process specification.\n"
    "- Only return names that appear in the list.\n"
)

TECHNICAL_GRADING_PROMPT = (
    "Grade the technical representativeness of one candidate process for the requirement (1 best, 5 worst).\n"
    "\n"
    "- Grade 1: the process technology matches the required technology and the product matches the process requirement.\n"
    '- Grade 2: one side is "generic" while the other is specific, and the specific technology differs little '
    "from other mainstream technologies; the product matches.\n"
    '- Grade 3: one side is "generic" while the other is specific, and the specific technology differs strongly '
    "from other mainstream technologies; the product matches.\n"
    "- Grade 4: both are different specific technologies with similar system boundaries and carbon footprint; "
    "the product matches.\n"
    "- Grade 5: any other situation.\n"
    "\n"
    '"Specific" means a named method or brand, such as "Bayer method". Process names are '
    '"activity ; product ; feedstock ; technology ; year".\n'
)

SPATIAL_GRADING_PROMPT = (
    "Grade the spatial representativeness of one candidate process for the requirement (1 best, 5 worst).\n"
    "\n"
    "- Grade 1: the process location is exactly the required location.\n"
    "- Grade 2: one location contains the other and the larger region has low internal heterogeneity.\n"
    "- Grade 3: one location contains the other and the larger region has high internal heterogeneity.\n"
    "- Grade 4: neither contains the other but the two are strongly similar.\n"
    "- Grade 5: any other situation.\n"
)

TEMPORAL_GRADING_PROMPT = (
    "Grade the temporal representativeness of one candidate process for the requirement (1 best, 5 worst).\n"
    "\n"
    "- Grade 1: the process year equals the required year.\n"
    "- Grade 2: the years differ by at most 2.\n"
    "- Grade 3: the years differ by more than 2 and at most 3.\n"
    "- Grade 4: the years differ by more than 3 and at most 4.\n"
    "- Grade 5: the years differ by more than 4, or no year is known.\n"
    "\n"
    "The year is the last element of the process name, or the validity_start field.\n"
)

HETEROGENEITY_PROMPT = (
    "You are an LCA professional evaluating the spatial and temporal heterogeneity of the required unit process.\n"
    "Answer RESULT_A when spatial heterogeneity is very low AND temporal heterogeneity is very strong; "
    "answer RESULT_B for any other combination.\n"
)

BOUNDARY_PROMPT = (
    "You are an LCA professional judging system boundaries.\n"
    "Decide whether the selected process reaches the cradle of the life cycle, the stage where raw materials "
    "are extracted from nature. Set reaches_cradle to true only in that case.\n"
)

INDUSTRY_PROMPT = (
    "You are an LCA professional specialised in industry analysis.\n"
    "From the name and characteristics of the selected unit process, state the industry it belongs to.\n"
)

FLOW_RELEVANCE_PROMPT = (
    "You are an LCA professional specialised in flow analysis.\n"
    "The context holds the selected process, its industry and its input flows.\n"
    "\n"
    "Identify the input flows the industry depends on: flows that are commonly used in that industry, "
    "and whose unavailability would significantly impact its operations.\n"
    "Rate each with relevance high, medium or low. Only use flow ids that appear in the input flows.\n"
)

SUB_REQUIREMENT_PROMPT = (
    "You are an LCA professional generating upstream analysis requirements.\n"
    "For every flow listed in the context write one new requirement statement focused on the carbon footprint "
    "of producing that flow.\n"
    "\n"
    "Rules:\n"
    "- Keep the time frame and geographic location of the downstream requirement; "
    'fall back to "current year" and "global" when they are empty.\n'
    "- Keep the industry context of the downstream process.\n"
    "- Return each flow_id unchanged.\n"
)
