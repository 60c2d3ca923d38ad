"""
Valuation Engine

Pure, side-effect-free computation of per-entity economics from entity state
plus a macro snapshot. Nothing here mutates its inputs or draws randomness,
so calling any function twice with the same inputs gives identical output.

Category-specific behavior is a closed dispatch over BusinessCategory; each
category's constants come from its CategoryProfile in config.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from config import CONFIG, GameConfig, UpgradeTrackSpec
from entities import (
    Business,
    BusinessCategory,
    LuxuryItem,
    MacroSnapshot,
    Property,
    PropertyCategory,
)


@dataclass(frozen=True)
class BusinessMetrics:
    revenue_per_hour: float = 0.0
    employee_cost_per_hour: float = 0.0
    operations_cost_per_hour: float = 0.0
    marketing_cost_per_hour: float = 0.0
    total_costs_per_hour: float = 0.0
    net_income_per_hour: float = 0.0


@dataclass(frozen=True)
class PropertyMetrics:
    income_per_hour: float = 0.0
    maintenance_per_hour: float = 0.0
    taxes_per_sec: float = 0.0
    insurance_per_sec: float = 0.0
    net_income_per_hour: float = 0.0


@dataclass(frozen=True)
class CategoryContext:
    """Category-specific revenue and cost adjustments for one business."""
    elasticity: float = 0.0
    operations_base: float = 0.08
    network_effect: float = 1.0
    foot_traffic: float = 1.0
    cogs_ratio: float = 0.0
    spoilage_rate: float = 0.0
    shrinkage_rate: float = 0.0
    infra_cost: float = 0.0
    energy_surcharge: float = 0.0
    compliance_cost: float = 0.0

    @property
    def cost_addons(self) -> float:
        return (
            self.cogs_ratio
            + self.spoilage_rate
            + self.shrinkage_rate
            + self.infra_cost
            + self.energy_surcharge
            + self.compliance_cost
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _track_benefit(entity, spec: UpgradeTrackSpec) -> float:
    return spec.benefit(entity.track_level(spec.key))


# ---------------------------------------------------------------------------
# Businesses
# ---------------------------------------------------------------------------

def business_level_cost(business: Business, config: GameConfig = CONFIG) -> float:
    """Cost of the next level (the purchase price while unowned)."""
    if not business.owned:
        return business.base_cost
    return float(math.floor(business.base_cost * config.businesses.level_cost_growth ** business.level))


def business_track_cost(business: Business, track: str, config: GameConfig = CONFIG) -> float:
    """Cost of the next level on an upgrade track; infinite when maxed or ineligible."""
    spec = config.businesses.tracks.get(track)
    if spec is None or not spec.applies_to(business.category.value):
        return math.inf
    level = business.track_level(track)
    if level >= spec.max_level:
        return math.inf
    cfg = config.businesses
    return float(math.floor(
        business.base_revenue_per_hour
        * cfg.upgrade_base_revenue_factor
        * cfg.level_cost_growth ** business.level
        * spec.cost_growth ** level
    ))


def hiring_cost(business: Business, config: GameConfig = CONFIG) -> float:
    return business.base_cost * config.businesses.hiring_cost_fraction


def training_cost(business: Business, config: GameConfig = CONFIG) -> float:
    if business.training_level >= config.businesses.max_training_level:
        return math.inf
    return float(math.floor(
        business.base_cost * config.businesses.training_cost_fraction * (business.training_level + 1)
    ))


def supply_contract_cost(business: Business, contract: str, config: GameConfig = CONFIG) -> float:
    terms = config.businesses.supply_contracts.get(contract)
    if terms is None or business.category != BusinessCategory.FOOD_BEV:
        return math.inf
    return float(math.floor(business.base_cost * terms[1]))


def business_sale_value(business: Business, config: GameConfig = CONFIG) -> float:
    return float(math.floor(business.total_invested * config.businesses.sale_depreciation))


def category_context(
    business: Business, macro: MacroSnapshot, config: GameConfig = CONFIG
) -> CategoryContext:
    """Resolve the category parameter bundle against the business and macro state."""
    cfg = config.businesses
    profile = cfg.categories[business.category.value]
    category = business.category

    if category == BusinessCategory.FOOD_BEV:
        cogs = profile.cogs_ratio
        if business.supply_contract in cfg.supply_contracts:
            cogs += cfg.supply_contracts[business.supply_contract][0]
        return CategoryContext(
            elasticity=profile.elasticity,
            operations_base=profile.operations_base,
            cogs_ratio=max(0.0, cogs),
            spoilage_rate=profile.spoilage_rate,
        )
    elif category == BusinessCategory.RETAIL_SERVICES:
        security = _track_benefit(business, cfg.tracks["security"]) if "security" in cfg.tracks else 0.0
        return CategoryContext(
            elasticity=profile.elasticity,
            operations_base=profile.operations_base,
            foot_traffic=business.foot_traffic_index,
            shrinkage_rate=max(0.0, profile.shrinkage_rate - security),
        )
    elif category == BusinessCategory.TECH_APPS:
        tier = 0
        if business.level >= profile.tier_start_level:
            tier = (business.level - profile.tier_start_level) // profile.tier_span
        return CategoryContext(
            elasticity=profile.elasticity,
            operations_base=profile.operations_base,
            network_effect=1.0 + profile.network_effect_per_tier * tier,
            infra_cost=profile.infra_cost_per_tier * tier,
        )
    elif category == BusinessCategory.INDUSTRIAL:
        surcharge = 0.0
        if macro.regional.energy_cost_index > profile.energy_surcharge_threshold:
            surcharge = profile.logistics_surcharge
        return CategoryContext(
            elasticity=profile.elasticity,
            operations_base=profile.operations_base,
            energy_surcharge=surcharge,
        )
    elif category == BusinessCategory.REAL_ESTATE_SERVICES:
        return CategoryContext(elasticity=profile.elasticity, operations_base=profile.operations_base)
    elif category == BusinessCategory.FINANCE_SERVICES:
        return CategoryContext(
            elasticity=profile.elasticity,
            operations_base=profile.operations_base,
            compliance_cost=profile.compliance_cost,
        )
    raise ValueError(f"Unhandled business category: {category}")


def dominance_bonus(share: float, config: GameConfig = CONFIG) -> Tuple[float, float]:
    """
    Look up (revenue bonus, marketing upkeep reduction) for a category share.

    Only the highest threshold met applies; tiers do not stack.
    """
    revenue_bonus, marketing_reduction = 0.0, 0.0
    for threshold, bonus, reduction in config.businesses.dominance_thresholds:
        if share >= threshold:
            revenue_bonus, marketing_reduction = bonus, reduction
    return revenue_bonus, marketing_reduction


def _revenue_before_dominance(
    business: Business, ctx: CategoryContext, config: GameConfig
) -> float:
    cfg = config.businesses
    gross = business.base_revenue_per_hour * cfg.revenue_growth ** (business.level - 1)

    revenue_add = 0.0
    for key in ("efficiency", "quality", "marketing", "rnd"):
        spec = cfg.tracks.get(key)
        if spec is not None and spec.applies_to(business.category.value):
            revenue_add += _track_benefit(business, spec)
    revenue = gross * (1.0 + revenue_add)

    low, high = cfg.elasticity_clamp
    revenue *= _clamp(1.0 + ctx.elasticity * (business.price_index - 1.0), low, high)
    revenue *= ctx.network_effect
    revenue *= ctx.foot_traffic
    return revenue


def business_revenue(
    business: Business, macro: MacroSnapshot, config: GameConfig = CONFIG, with_dominance: bool = True
) -> float:
    if not business.owned or business.level == 0:
        return 0.0
    ctx = category_context(business, macro, config)
    revenue = _revenue_before_dominance(business, ctx, config)
    if with_dominance:
        share = macro.category_dominance.get(business.category.value, 0.0)
        revenue *= 1.0 + dominance_bonus(share, config)[0]
    return revenue


def category_dominance_shares(
    businesses: Iterable[Business], macro: MacroSnapshot, config: GameConfig = CONFIG
) -> Dict[str, float]:
    """
    Player revenue share per category against the fixed NPC baseline.

    Shares are measured on revenue before the dominance bonus itself so the
    bonus cannot feed back into its own threshold.
    """
    totals: Dict[str, float] = {category.value: 0.0 for category in BusinessCategory}
    for business in businesses:
        totals[business.category.value] += business_revenue(business, macro, config, with_dominance=False)
    baseline = config.businesses.npc_baseline_revenue
    return {
        category: (revenue / (revenue + baseline) if revenue + baseline > 0 else 0.0)
        for category, revenue in totals.items()
    }


def event_cost_multiplier(business: Business, macro: MacroSnapshot) -> float:
    multiplier = 1.0
    for event in macro.live_events():
        if event.costs_multiplier is not None and event.targets_category(business.category.value):
            multiplier *= event.costs_multiplier
    return multiplier


def business_metrics(
    business: Business, macro: MacroSnapshot, config: GameConfig = CONFIG
) -> BusinessMetrics:
    """
    Per-hour revenue, cost lines and net income for one business.

    Net income may be negative; nothing here floors it.
    """
    if not business.owned or business.level == 0:
        return BusinessMetrics()

    cfg = config.businesses
    eps = config.global_caps.epsilon
    ctx = category_context(business, macro, config)

    revenue = _revenue_before_dominance(business, ctx, config)
    share = macro.category_dominance.get(business.category.value, 0.0)
    revenue_bonus, marketing_reduction = dominance_bonus(share, config)
    revenue *= 1.0 + revenue_bonus

    employee_efficiency = 1.0 + cfg.employee_efficiency_per_level * business.track_level("efficiency")
    workforce_efficiency = 1.0 + cfg.training_efficiency_per_level * business.training_level
    employees = revenue * cfg.employee_cost_base / max(eps, employee_efficiency * workforce_efficiency)

    operations = revenue * ctx.operations_base + revenue * ctx.cost_addons

    marketing_upkeep = (1.0 + cfg.marketing_upkeep_slope * business.track_level("marketing"))
    marketing = revenue * cfg.marketing_cost_base * marketing_upkeep * (1.0 - marketing_reduction)

    automation = _track_benefit(business, cfg.tracks["automation"])
    sustainability = _track_benefit(business, cfg.tracks["sustainability"])
    cost_multiplier = (1.0 - automation) * (1.0 - sustainability) * event_cost_multiplier(business, macro)

    employees *= cost_multiplier
    operations *= cost_multiplier
    marketing *= cost_multiplier
    total = employees + operations + marketing

    return BusinessMetrics(
        revenue_per_hour=revenue,
        employee_cost_per_hour=employees,
        operations_cost_per_hour=operations,
        marketing_cost_per_hour=marketing,
        total_costs_per_hour=total,
        net_income_per_hour=revenue - total,
    )


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

def property_value(prop: Property, config: GameConfig = CONFIG) -> float:
    return prop.base_cost + prop.total_upgrade_spend * config.properties.value_upgrade_factor


def property_level_cost(prop: Property, config: GameConfig = CONFIG) -> float:
    if not prop.owned:
        return prop.base_cost
    return float(math.floor(prop.base_cost * config.properties.level_cost_growth ** prop.level))


def property_track_cost(prop: Property, track: str, config: GameConfig = CONFIG) -> float:
    spec = config.properties.tracks.get(track)
    if spec is None or not spec.applies_to(prop.category.value):
        return math.inf
    level = prop.track_level(track)
    if level >= spec.max_level:
        return math.inf
    base = prop.base_cost * config.properties.track_base_cost_fraction
    return float(math.floor(base * spec.cost_growth ** level))


def amenity_cost(prop: Property, amenity: str, config: GameConfig = CONFIG) -> float:
    terms = config.properties.amenities.get(amenity)
    if terms is None or prop.category != PropertyCategory.RESIDENTIAL or amenity in prop.amenities:
        return math.inf
    return float(math.floor(prop.base_cost * terms[3]))


def tenant_change_cost(prop: Property, config: GameConfig = CONFIG) -> float:
    return float(math.floor(prop.base_cost * config.properties.tenant_change_cost_fraction))


def tenant_modifiers(prop: Property, config: GameConfig = CONFIG) -> Tuple[float, float, float]:
    """(rent multiplier, vacancy rate, maintenance add-on); tiers apply to residential only."""
    cfg = config.properties
    if prop.category != PropertyCategory.RESIDENTIAL:
        return 1.0, cfg.default_vacancy, 0.0
    return cfg.tenant_tiers.get(prop.tenant_quality, cfg.tenant_tiers[cfg.default_tenant_tier])


def amenity_modifiers(prop: Property, config: GameConfig = CONFIG) -> Tuple[float, float, float]:
    """Summed (rent bonus, maintenance add-on, vacancy reduction) of installed amenities."""
    rent, maintenance, vacancy = 0.0, 0.0, 0.0
    if prop.category != PropertyCategory.RESIDENTIAL:
        return rent, maintenance, vacancy
    for amenity in prop.amenities:
        terms = config.properties.amenities.get(amenity)
        if terms is None:
            continue
        rent += terms[0]
        maintenance += terms[1]
        vacancy += terms[2]
    return rent, maintenance, vacancy


def regional_multiplier(prop: Property, macro: MacroSnapshot, config: GameConfig = CONFIG) -> float:
    index_name, base, weight = config.properties.regional_formulas[prop.category.value]
    return base + weight * macro.regional.index(index_name)


def property_metrics(
    prop: Property, macro: MacroSnapshot, config: GameConfig = CONFIG
) -> PropertyMetrics:
    """
    Hourly income, maintenance and net, plus per-second tax and insurance.

    Rented properties earn rent shaped by tenants, amenities and vacancy.
    Unrented properties earn a flat use income with no tenant effects.
    """
    if not prop.owned or prop.level == 0:
        return PropertyMetrics()

    cfg = config.properties
    tracks = cfg.tracks
    renovation = _track_benefit(prop, tracks["renovation"])
    smart_management = _track_benefit(prop, tracks["smart_management"])
    regional = regional_multiplier(prop, macro, config)

    if prop.rented:
        rent_mult, vacancy, tenant_maintenance = tenant_modifiers(prop, config)
        amenity_rent, amenity_maintenance, amenity_vacancy = amenity_modifiers(prop, config)

        income = prop.base_income_per_hour * prop.level * rent_mult
        income *= 1.0 + renovation + amenity_rent
        if prop.category == PropertyCategory.COMMERCIAL:
            income *= 1.0 + _track_benefit(prop, tracks["fitout"])
        income *= regional

        screening = 0.0
        if tracks["screening"].applies_to(prop.category.value):
            screening = _track_benefit(prop, tracks["screening"])
        effective_vacancy = max(0.0, vacancy - amenity_vacancy - screening)
        income *= 1.0 - effective_vacancy

        maintenance = income * cfg.maintenance_rate * (1.0 + tenant_maintenance + amenity_maintenance)
    else:
        income = prop.base_income_per_hour * prop.level * cfg.use_income_ratio
        income *= (1.0 + renovation) * regional
        maintenance = income * cfg.maintenance_rate

    maintenance *= 1.0 - smart_management

    value = property_value(prop, config)
    taxes_per_sec = cfg.tax_rate_monthly * value / cfg.seconds_per_month
    insurance_per_sec = cfg.insurance_rate_monthly * value / cfg.seconds_per_month
    hour = config.global_caps.seconds_per_hour
    net = income - maintenance - taxes_per_sec * hour - insurance_per_sec * hour

    return PropertyMetrics(
        income_per_hour=income,
        maintenance_per_hour=maintenance,
        taxes_per_sec=taxes_per_sec,
        insurance_per_sec=insurance_per_sec,
        net_income_per_hour=net,
    )


# ---------------------------------------------------------------------------
# Luxury
# ---------------------------------------------------------------------------

def luxury_multiplier(item: LuxuryItem, config: GameConfig = CONFIG) -> float:
    """Base multiplier plus every unlocked polish/refit benefit."""
    bonus = sum(_track_benefit(item, spec) for spec in config.luxury.tracks.values())
    return item.base_multiplier + bonus


def total_luxury_bonus(items: Iterable[LuxuryItem], config: GameConfig = CONFIG) -> float:
    """Additive contribution of owned items to the (1 + bonuses) term."""
    return sum(luxury_multiplier(item, config) for item in items if item.owned)


def luxury_track_cost(item: LuxuryItem, track: str, config: GameConfig = CONFIG) -> float:
    spec = config.luxury.tracks.get(track)
    if spec is None:
        return math.inf
    level = item.track_level(track)
    if level >= spec.max_level:
        return math.inf
    return float(math.floor(item.cost * config.luxury.track_base_cost_fraction * spec.cost_growth ** level))


def entourage_cost(item: LuxuryItem, config: GameConfig = CONFIG) -> float:
    if item.entourage:
        return math.inf
    return float(math.floor(item.cost * config.luxury.entourage_cost_fraction))


def brand_influence_score(items: Iterable[LuxuryItem]) -> float:
    return sum(item.brand_score for item in items if item.owned)


def brand_influence_bonus(score: float, config: GameConfig = CONFIG) -> float:
    bonus = 0.0
    for threshold, value in config.luxury.brand_thresholds:
        if score >= threshold:
            bonus = value
    return bonus
