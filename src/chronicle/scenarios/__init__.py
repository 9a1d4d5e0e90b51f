from src.chronicle.scenarios.demo_encounter import WEAPONS, create_demo_encounter, seed_story_memory

__all__ = ['WEAPONS', 'create_demo_encounter', 'seed_story_memory']
