"""Read-only lookup tables injected into the enrichment pipeline."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Final

from app.config import settings
from app.services.enrichment.costs import FIRECRAWL_CREDIT_USD, MODEL_PRICING, ModelPrice

# Keys are lowercase with apostrophes replaced by spaces, as resolve_parent_domain normalizes names.
KNOWN_PARENT_DOMAINS: Final[Mapping[str, str]] = MappingProxyType(
    {
        "general mills": "generalmills.com",
        "lactalis": "lactalis.com",
        "lactalis usa": "lactalisusa.com",
        "nestle": "nestle.com",
        "kraft heinz": "kraftheinzcompany.com",
        "pepsico": "pepsico.com",
        "coca-cola": "coca-colacompany.com",
        "the coca-cola company": "coca-colacompany.com",
        "unilever": "unilever.com",
        "mondelez": "mondelezinternational.com",
        "tyson foods": "tyson.com",
        "jbs": "jbs.com.br",
        "cargill": "cargill.com",
        "archer daniels midland": "adm.com",
        "adm": "adm.com",
        "conagra": "conagrabrands.com",
        "conagra brands": "conagrabrands.com",
        "hormel": "hormelfoods.com",
        "hormel foods": "hormelfoods.com",
        "smithfield": "smithfieldfoods.com",
        "smithfield foods": "smithfieldfoods.com",
        "premium brands": "premiumbrandsholdings.com",
        "premium brands holdings": "premiumbrandsholdings.com",
        "premium brands holdings corporation": "premiumbrandsholdings.com",
        "maple leaf foods": "mapleleaffoods.com",
        "saputo": "saputo.com",
        "danone": "danone.com",
        "kellogg": "kelloggcompany.com",
        "kellogg s": "kelloggcompany.com",
        "post holdings": "postholdings.com",
        "treehouse foods": "treehousefoods.com",
        "b&g foods": "bgfoods.com",
        "campbell soup": "campbellsoupcompany.com",
        "campbell soup company": "campbellsoupcompany.com",
        "the campbells company": "campbellsoupcompany.com",
        "campbell s": "campbellsoupcompany.com",
        "smucker": "jmsmucker.com",
        "j.m. smucker": "jmsmucker.com",
        "the j.m. smucker company": "jmsmucker.com",
        "hershey": "thehersheycompany.com",
        "the hershey company": "thehersheycompany.com",
        "mars": "mars.com",
        "ferrero": "ferrero.com",
        "lindt": "lindt-spruengli.com",
        "blue diamond growers": "bluediamond.com",
        "ocean spray": "oceanspray.com",
        "land o lakes": "landolakesinc.com",
        "dairy farmers of america": "dfamilk.com",
        "dean foods": "deanfoods.com",
        "schreiber foods": "schreiberfoods.com",
        "leprino foods": "leprinofoods.com",
        "tillamook": "tillamook.com",
        "celerian group": "celeriangroup.com",
    }
)

TARGET_NAICS_CODES: Final[frozenset[str]] = frozenset(
    {
        "111219", "111333", "111334", "111339", "111998",
        "112120", "112210", "112310", "112320", "112330", "112340", "112390",
        "115114",
        "311111", "311119", "311211", "311212", "311213", "311221", "311224", "311225", "311230",
        "311313", "311314", "311340", "311351", "311352", "311411", "311412", "311421", "311422",
        "311423", "311511", "311512", "311513", "311514", "311520", "311611", "311612", "311613",
        "311615", "311710", "311811", "311812", "311813", "311821", "311824", "311830", "311911",
        "311919", "311920", "311930", "311941", "311942", "311991", "311999",
        "312111", "312112", "312120", "312130", "312140",
        "424410", "424420", "424430", "424440", "424450", "424460", "424470", "424480", "424490",
        "424510", "424590",
        "445110", "445131", "493120",
    }
)

TARGET_REGIONS: Final[frozenset[str]] = frozenset({"US", "MX", "CA", "PR"})

# Revenue per employee (USD) keyed by the first two industry-code digits.
REVENUE_PER_EMPLOYEE: Final[Mapping[str, float]] = MappingProxyType(
    {
        "44": 80_000,
        "45": 80_000,
        "42": 120_000,
        "31": 120_000,
        "32": 120_000,
        "33": 120_000,
        "51": 200_000,
        "54": 200_000,
    }
)
DEFAULT_REVENUE_PER_EMPLOYEE: Final[float] = 100_000

# (size band, revenue band) typical of a small company in each sector.
INDUSTRY_AVERAGES: Final[Mapping[str, tuple[str, str]]] = MappingProxyType(
    {
        "31": ("11-50 Employees", "1M-5M"),
        "32": ("11-50 Employees", "1M-5M"),
        "33": ("11-50 Employees", "1M-5M"),
        "42": ("11-50 Employees", "5M-10M"),
        "44": ("2-10 Employees", "500K-1M"),
        "45": ("2-10 Employees", "500K-1M"),
        "51": ("11-50 Employees", "1M-5M"),
        "54": ("2-10 Employees", "500K-1M"),
        "72": ("11-50 Employees", "500K-1M"),
    }
)
DEFAULT_INDUSTRY_AVERAGE: Final[tuple[str, str]] = ("2-10 Employees", "500K-1M")


@dataclass(frozen=True)
class EnrichmentConfig:
    """Tables and knobs the pipeline reads but never mutates."""

    parent_domains: Mapping[str, str] = field(default_factory=lambda: KNOWN_PARENT_DOMAINS)
    target_naics_codes: frozenset[str] = TARGET_NAICS_CODES
    target_regions: frozenset[str] = TARGET_REGIONS
    passing_revenue_threshold: str = "10M-25M"
    revenue_per_employee: Mapping[str, float] = field(default_factory=lambda: REVENUE_PER_EMPLOYEE)
    default_revenue_per_employee: float = DEFAULT_REVENUE_PER_EMPLOYEE
    industry_averages: Mapping[str, tuple[str, str]] = field(default_factory=lambda: INDUSTRY_AVERAGES)
    default_industry_average: tuple[str, str] = DEFAULT_INDUSTRY_AVERAGE
    model_pricing: Mapping[str, ModelPrice] = field(default_factory=lambda: MODEL_PRICING)
    scrape_credit_usd: float = FIRECRAWL_CREDIT_USD
    scrape_batch_size: int = 3
    page_char_budget: int = 5_000
    force_deep_research: bool = False


def default_enrichment_config() -> EnrichmentConfig:
    return EnrichmentConfig(
        scrape_batch_size=settings.scrape_batch_size,
        page_char_budget=settings.page_char_budget,
        force_deep_research=settings.enrichment_force_deep_research,
    )
