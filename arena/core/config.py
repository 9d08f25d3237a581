from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Schedule projection (minutes)
    MATCH_DURATION_MINUTES: int = 30
    ROUND_GAP_MINUTES: int = 60
    MATCH_STAGGER_MINUTES: int = 5

    # MMR engine
    K_FACTOR: int = 32
    MAX_MMR_CHANGE: int = 50
    PLACEMENT_MATCHES: int = 10
    PROMOTION_SHIELD_GAMES: int = 5
    PLACEMENT_SHIELD_GAMES: int = 10
    PROMOTION_DIVISION_MMR: int = 80
    DEMOTION_DIVISION_MMR: int = 20

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "ARENA_"

settings = Settings()
