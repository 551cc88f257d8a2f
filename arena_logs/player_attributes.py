"""
Tabelas fechadas habilidade -> classe/spec/raca (The War Within, 11.0.x).

As buscas ignoram caixa. Nas inferencias, empate entre entradas e
resolvido numa ordem estavel: nomes de spell em ordem alfabetica
(sem caixa), spells de alta confianca primeiro para classe.
"""

from collections.abc import Iterable

SPELL_TO_CLASS: dict[str, str] = {
    # Mage
    "Arcane Intellect": "Mage",
    "Polymorph": "Mage",
    "Blink": "Mage",
    "Counterspell": "Mage",
    "Ice Block": "Mage",
    "Combustion": "Mage",
    "Icy Veins": "Mage",
    "Time Warp": "Mage",
    # Priest
    "Power Word: Shield": "Priest",
    "Shadow Word: Pain": "Priest",
    "Dispel Magic": "Priest",
    "Psychic Scream": "Priest",
    "Mind Control": "Priest",
    "Voidform": "Priest",
    "Shadowfiend": "Priest",
    # Warlock
    "Soulstone": "Warlock",
    "Summon Imp": "Warlock",
    "Summon Voidwalker": "Warlock",
    "Summon Succubus": "Warlock",
    "Summon Felhunter": "Warlock",
    "Demonic Gateway": "Warlock",
    "Soulburn": "Warlock",
    "Chaos Bolt": "Warlock",
    # Warrior
    "Charge": "Warrior",
    "Shield Slam": "Warrior",
    "Execute": "Warrior",
    "Whirlwind": "Warrior",
    "Battle Shout": "Warrior",
    "Recklessness": "Warrior",
    # Paladin
    "Lay on Hands": "Paladin",
    "Divine Shield": "Paladin",
    "Hammer of Wrath": "Paladin",
    "Consecration": "Paladin",
    "Avenging Wrath": "Paladin",
    "Word of Glory": "Paladin",
    # Hunter
    "Hunter's Mark": "Hunter",
    "Aspect of the Cheetah": "Hunter",
    "Aspect of the Hawk": "Hunter",
    "Trap Launcher": "Hunter",
    "Freezing Trap": "Hunter",
    "Kill Command": "Hunter",
    "Bestial Wrath": "Hunter",
    # Rogue
    "Stealth": "Rogue",
    "Sap": "Rogue",
    "Vanish": "Rogue",
    "Kidney Shot": "Rogue",
    "Blade Flurry": "Rogue",
    "Shadow Dance": "Rogue",
    "Adrenaline Rush": "Rogue",
    # Druid
    "Bear Form": "Druid",
    "Cat Form": "Druid",
    "Travel Form": "Druid",
    "Moonkin Form": "Druid",
    "Rejuvenation": "Druid",
    "Entangling Roots": "Druid",
    "Innervate": "Druid",
    "Tranquility": "Druid",
    # Shaman
    "Lightning Bolt": "Shaman",
    "Chain Lightning": "Shaman",
    "Earth Shock": "Shaman",
    "Frost Shock": "Shaman",
    "Windfury Weapon": "Shaman",
    "Totemic Recall": "Shaman",
    "Spirit Walk": "Shaman",
    # Death Knight
    "Death Grip": "Death Knight",
    "Death Coil": "Death Knight",
    "Army of the Dead": "Death Knight",
    "Anti-Magic Shell": "Death Knight",
    "Unholy Frenzy": "Death Knight",
    # Demon Hunter
    "Metamorphosis": "Demon Hunter",
    "Chaos Strike": "Demon Hunter",
    "Fel Rush": "Demon Hunter",
    "Vengeful Retreat": "Demon Hunter",
    "Imprison": "Demon Hunter",
    # Monk
    "Roll": "Monk",
    "Flying Serpent Kick": "Monk",
    "Touch of Death": "Monk",
    "Storm, Earth, and Fire": "Monk",
    "Transcendence": "Monk",
    # Evoker
    "Living Flame": "Evoker",
    "Disintegrate": "Evoker",
    "Deep Breath": "Evoker",
    "Emerald Blossom": "Evoker",
}

# (spec, prioridade); prioridade maior = indicador mais forte
SPELL_TO_SPEC: dict[str, tuple[str, int]] = {
    "Combustion": ("Fire", 100),
    "Icy Veins": ("Frost", 100),
    "Arcane Power": ("Arcane", 100),
    "Pyroblast": ("Fire", 80),
    "Ice Lance": ("Frost", 80),
    "Arcane Barrage": ("Arcane", 80),
    "Voidform": ("Shadow", 100),
    "Shadowfiend": ("Shadow", 90),
    "Penance": ("Discipline", 100),
    "Guardian Spirit": ("Holy", 100),
    "Lightwell": ("Holy", 90),
    "Chaos Bolt": ("Destruction", 100),
    "Hand of Gul'dan": ("Demonology", 100),
    "Haunt": ("Affliction", 100),
    "Drain Soul": ("Affliction", 80),
    "Shield Slam": ("Protection", 100),
    "Recklessness": ("Fury", 100),
    "Colossus Smash": ("Arms", 100),
    "Raging Blow": ("Fury", 90),
    "Mortal Strike": ("Arms", 90),
    "Word of Glory": ("Protection", 100),
    "Hammer of Wrath": ("Retribution", 100),
    "Light of Dawn": ("Holy", 100),
    "Shield of Vengeance": ("Retribution", 90),
    "Consecration": ("Protection", 80),
    "Kill Command": ("Beast Mastery", 100),
    "Bestial Wrath": ("Beast Mastery", 100),
    "Explosive Shot": ("Marksmanship", 100),
    "Black Arrow": ("Survival", 100),
    "Carve": ("Survival", 90),
    "Shadow Dance": ("Subtlety", 100),
    "Adrenaline Rush": ("Outlaw", 100),
    "Blade Flurry": ("Outlaw", 100),
    "Envenom": ("Assassination", 100),
    "Mutilate": ("Assassination", 90),
    "Bear Form": ("Guardian", 100),
    "Cat Form": ("Feral", 100),
    "Moonkin Form": ("Balance", 100),
    "Tranquility": ("Restoration", 100),
    "Innervate": ("Restoration", 90),
    "Lava Burst": ("Elemental", 100),
    "Stormstrike": ("Enhancement", 100),
    "Riptide": ("Restoration", 100),
    "Chain Heal": ("Restoration", 90),
    "Frost Strike": ("Frost", 100),
    "Scourge Strike": ("Unholy", 100),
    "Heart Strike": ("Blood", 100),
    "Death Strike": ("Blood", 90),
    "Chaos Strike": ("Havoc", 100),
    "Soul Cleave": ("Vengeance", 100),
    "Immolation Aura": ("Havoc", 90),
    "Storm, Earth, and Fire": ("Windwalker", 100),
    "Touch of Death": ("Windwalker", 100),
    "Guard": ("Brewmaster", 100),
    "Soothing Mist": ("Mistweaver", 100),
    "Disintegrate": ("Devastation", 100),
    "Emerald Blossom": ("Preservation", 100),
    "Deep Breath": ("Devastation", 90),
}

# raciais -> raca
ABILITY_TO_FACTION: dict[str, str] = {
    "Shadowmeld": "Night Elf",
    "Every Man for Himself": "Human",
    "Will to Survive": "Human",
    "Stoneform": "Dwarf",
    "Escape Artist": "Gnome",
    "Gift of the Naaru": "Draenei",
    "Darkflight": "Worgen",
    "Two Forms": "Worgen",
    "Blood Fury": "Orc",
    "Will of the Forsaken": "Undead",
    "Cannibalize": "Undead",
    "War Stomp": "Tauren",
    "Berserking": "Troll",
    "Arcane Torrent": "Blood Elf",
    "Rocket Jump": "Goblin",
    "Rocket Barrage": "Goblin",
    "Quaking Palm": "Pandaren",
    "Arcane Pulse": "Nightborne",
    "Bull Rush": "Highmountain Tauren",
    "Light's Judgment": "Lightforged Draenei",
    "Spatial Rift": "Void Elf",
    "Fireblood": "Dark Iron Dwarf",
    "Ancestral Call": "Mag'har Orc",
    "Haymaker": "Kul Tiran",
    "Regeneratin'": "Zandalari Troll",
    "Hyper Organic Light Originator": "Mechagnome",
    "Make Camp": "Vulpera",
    "Tail Swipe": "Dracthyr",
}

HIGH_CONFIDENCE_CLASS_SPELLS: frozenset[str] = frozenset(
    s.lower()
    for s in (
        "Ice Block",
        "Death Grip",
        "Lay on Hands",
        "Metamorphosis",
        "Bear Form",
        "Cat Form",
        "Moonkin Form",
        "Stealth",
        "Vanish",
        "Summon Imp",
        "Summon Voidwalker",
        "Summon Succubus",
        "Summon Felhunter",
        "Demonic Gateway",
        "Bestial Wrath",
        "Kill Command",
        "Mind Control",
        "Voidform",
        "Charge",
        "Totemic Recall",
        "Roll",
        "Flying Serpent Kick",
        "Deep Breath",
        "Disintegrate",
    )
)

_CLASS_BY_SPELL = {k.lower(): v for k, v in SPELL_TO_CLASS.items()}
_SPEC_BY_SPELL = {k.lower(): v for k, v in SPELL_TO_SPEC.items()}
_FACTION_BY_ABILITY = {k.lower(): v for k, v in ABILITY_TO_FACTION.items()}


def _ordered(spells: Iterable[str]) -> list[str]:
    return sorted({s.strip().lower() for s in spells if s and s.strip()})


def determine_class(spells: Iterable[str]) -> str | None:
    ordered = _ordered(spells)
    for spell in ordered:
        if spell in HIGH_CONFIDENCE_CLASS_SPELLS and spell in _CLASS_BY_SPELL:
            return _CLASS_BY_SPELL[spell]
    return next((_CLASS_BY_SPELL[s] for s in ordered if s in _CLASS_BY_SPELL), None)


def determine_spec(spells: Iterable[str]) -> str | None:
    """Spec com maior prioridade; empate resolvido pelo nome da spec."""
    candidates: dict[str, int] = {}
    for spell in _ordered(spells):
        if spell not in _SPEC_BY_SPELL:
            continue
        spec, priority = _SPEC_BY_SPELL[spell]
        candidates[spec] = max(priority, candidates.get(spec, priority))
    if not candidates:
        return None
    return min(candidates.items(), key=lambda kv: (-kv[1], kv[0]))[0]


def determine_faction(spells: Iterable[str]) -> str | None:
    return next(
        (_FACTION_BY_ABILITY[s] for s in _ordered(spells) if s in _FACTION_BY_ABILITY),
        None,
    )
