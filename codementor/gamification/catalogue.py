"""Default achievement catalogue."""

DEFAULT_ACHIEVEMENTS = [
    {
        "name": "First Steps",
        "description": "Complete your first code analysis",
        "icon": "👶",
        "rarity": "common",
        "xp_reward": 50,
        "requirement_type": "ai_interactions",
        "requirement_value": 1,
    },
    {
        "name": "Bug Hunter",
        "description": "Fix 10 bugs with AI assistance",
        "icon": "🐛",
        "rarity": "rare",
        "xp_reward": 200,
        "requirement_type": "bugs_fixed",
        "requirement_value": 10,
    },
    {
        "name": "Code Master",
        "description": "Reach level 10",
        "icon": "👑",
        "rarity": "epic",
        "xp_reward": 500,
        "requirement_type": "level",
        "requirement_value": 10,
    },
    {
        "name": "Game Champion",
        "description": "Win 25 coding games",
        "icon": "🏆",
        "rarity": "epic",
        "xp_reward": 300,
        "requirement_type": "games_won",
        "requirement_value": 25,
    },
    {
        "name": "Legendary Coder",
        "description": "Maintain a 30-day coding streak",
        "icon": "🔥",
        "rarity": "legendary",
        "xp_reward": 1000,
        "requirement_type": "streak",
        "requirement_value": 30,
    },
]
