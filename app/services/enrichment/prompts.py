"""Prompt templates for the search, deep-research and analysis model calls."""

from __future__ import annotations

from typing import Final

from app.models.enrichment import REVENUE_BANDS, SIZE_BANDS

_REVENUE_BAND_LIST = ", ".join(f'"{band}"' for band in REVENUE_BANDS)
_SIZE_BAND_LIST = ", ".join(f'"{band}"' for band in SIZE_BANDS)

SEARCH_SYSTEM_PROMPT: Final[str] = (
    "You are a business research analyst with live web search. "
    "Answer only with facts you found in sources and return ONLY valid JSON."
)

FIRST_PASS_SCHEMA: Final[str] = """{
  "company_name": "Legal or trading name",
  "parent_company": "Parent company if subsidiary, otherwise null",
  "entity_scope": "operating_company",
  "relationship_type": "standalone | subsidiary | division | brand | unknown",
  "is_public_company": false,
  "headquarters": {"city": "City", "state": "State", "country": "Country", "country_code": "US"},
  "urls_to_crawl": ["https://company.com", "https://www.linkedin.com/company/..."],
  "revenue_found": [
    {
      "amount": "$42 million",
      "source": "2024 press release",
      "year": "2024",
      "is_estimate": false,
      "scope": "operating_company | ultimate_parent",
      "source_type": "filing | investor_relations | company_site | media | estimate_site | directory | unknown",
      "evidence_url": "https://...",
      "evidence_excerpt": "short quote"
    }
  ],
  "employee_count_found": {"amount": "250", "source": "LinkedIn", "scope": "operating_company"},
  "linkedin_url_candidates": [{"url": "https://www.linkedin.com/company/...", "confidence": "high"}],
  "canonical_website": {"url": "https://company.com", "confidence": "high", "reasoning": "..."},
  "search_queries": ["queries you ran"]
}"""

FIRST_PASS_PROMPT: Final[str] = """Research the company that operates {subject}.

Find its annual revenue and employee count. Search the company website, SEC filings and
annual reports, investor relations, press releases and reputable media for revenue; check
LinkedIn and the company website for headcount. Mark ZoomInfo, Growjo, Owler and similar
figures as estimates.

Return ALL revenue figures you find, not just the best one. Tag each figure with its scope:
"operating_company" when it describes this specific entity, "ultimate_parent" when it is a
parent group's consolidated number.

Actively search for (do not infer) the company's official LinkedIn company page and its
canonical website. If {domain} redirects to or belongs to a different primary site, report
that site as canonical_website.
{hints}
Respond with JSON in exactly this shape:
{schema}

Return ONLY valid JSON."""

STRICT_FIRST_PASS_PROMPT: Final[str] = """A previous search identified the company at {domain} as "{previous_name}",
but the website content does not mention that name. Identify the company again, strictly.

1. Confirm the company name from the literal homepage, footer, copyright line or About page
   of {domain} (use site:{domain} searches) before anything else.
2. Only after the identity is confirmed, search for that company's revenue, headcount,
   headquarters and LinkedIn page.
3. Do not return data for similarly named companies.
{hints}
Respond with JSON in exactly this shape:
{schema}

Return ONLY valid JSON."""

REVENUE_RESEARCH_PROMPT: Final[str] = """What is the annual revenue for {company_name} ({domain})?

Find the SPECIFIC company's revenue, not a parent company's. If this is a subsidiary,
find THAT subsidiary's revenue. Check SEC 10-K filings, company press releases,
Forbes, Bloomberg, Reuters and industry reports.

Return ONLY valid JSON:
{{"revenue": "$X million", "source": "SEC 10-K 2024", "year": "2024", "confidence": "high"}}

If no reliable data is found, return:
{{"revenue": null, "source": null, "year": null, "confidence": "low"}}"""

EMPLOYEE_RESEARCH_PROMPT: Final[str] = """How many employees does {company_name} ({domain}) have?

Find the SPECIFIC company's employee count, not a parent company's. Check the LinkedIn
company page, the company website (About/Careers), SEC filings and Glassdoor.

Return ONLY valid JSON:
{{"employees": 1500, "source": "LinkedIn", "confidence": "high"}}

If no reliable data is found, return: {{"employees": null, "source": null, "confidence": "low"}}"""

LOCATION_RESEARCH_PROMPT: Final[str] = """Where is {company_name} ({domain}) headquartered?

Is this a US company? Does it have US operations or a US subsidiary?

Return ONLY valid JSON:
{{"city": "City", "state": "State/Province", "country": "Country", "country_code": "US",
  "is_us_hq": true, "is_us_subsidiary": false, "confidence": "high"}}"""

ANALYSIS_SYSTEM_PROMPT: Final[str] = f"""You are a data extraction specialist. Analyze scraped web content
and web-search context and extract structured company information.

Fields:
- business_description: 2-4 sentences on what the company primarily does (manufacturer,
  retailer, wholesaler/distributor, food service ...), its products and markets.
- city, state: headquarters of THIS entity, not its parent.
- hq_country: 2-letter ISO country code of THIS entity's headquarters.
- is_us_hq: true if this entity's global HQ is in the United States.
- is_us_subsidiary: true if the company has US operations/subsidiary or is a subsidiary or
  franchisee of a US parent.
- company_revenue: one of {_REVENUE_BAND_LIST} or null.
  Never use ultimate_parent revenue for the operating company. Apply the 5x conflict rule
  only within one scope; if same-scope figures differ by more than 5x, use null. Never
  estimate revenue from headcount. The revenue reasoning MUST quote the figure and source.
- company_size: one of {_SIZE_BAND_LIST}.
- naics_codes_6_digit: up to 3 objects {{"code": "311991", "description": "..."}}.
- source_urls: URLs you used.
- quality: {{"location"|"revenue"|"size"|"industry": {{"confidence": "high|medium|low", "reasoning": "..."}}}}

Return ONLY valid JSON with these keys. Use null for fields not found."""

ANALYSIS_USER_PROMPT: Final[str] = """Company: {company_name}
Domain: {domain}

{context}"""


def build_hints(*, company_name: str | None, state: str | None, country: str | None) -> str:
    """Optional caller-supplied identity hints appended to the search prompts."""
    lines = []
    if company_name:
        lines.append(f"The company is believed to be named \"{company_name}\"; search by that name if the domain has no site.")
    if state or country:
        location = ", ".join(part for part in (state, country) if part)
        lines.append(f"It is believed to be located in {location}.")
    if not lines:
        return ""
    return "\n" + "\n".join(lines) + "\n"


def render_first_pass_prompt(
    domain: str,
    *,
    company_name: str | None = None,
    state: str | None = None,
    country: str | None = None,
) -> str:
    subject = f'"{company_name}" ({domain})' if company_name else domain
    return FIRST_PASS_PROMPT.format(
        subject=subject,
        domain=domain,
        hints=build_hints(company_name=company_name, state=state, country=country),
        schema=FIRST_PASS_SCHEMA,
    )


def render_strict_first_pass_prompt(
    domain: str,
    *,
    previous_name: str,
    state: str | None = None,
    country: str | None = None,
) -> str:
    return STRICT_FIRST_PASS_PROMPT.format(
        domain=domain,
        previous_name=previous_name,
        hints=build_hints(company_name=None, state=state, country=country),
        schema=FIRST_PASS_SCHEMA,
    )
