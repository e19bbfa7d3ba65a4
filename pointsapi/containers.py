from dependency_injector import containers, providers

from pointsapi.config import Settings
from pointsapi.providers.queue.publisher import build_event_publisher
from pointsapi.services.catalog import SHOP_CATALOG, Catalog
from pointsapi.services.earning_policy import EarningPolicy


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(Settings)


class CoreModule(containers.DeclarativeContainer):
    """Process-wide, stateless collaborators."""

    config = providers.DependenciesContainer()

    earning_policy = providers.Singleton(EarningPolicy.from_settings, settings=config.config)
    catalog = providers.Singleton(Catalog, items=SHOP_CATALOG)
    event_publisher = providers.Singleton(build_event_publisher, settings=config.config)


class Container(containers.DeclarativeContainer):
    """Application container."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "pointsapi.deps",
        ],
    )

    config = providers.Container(ConfigModule)
    core = providers.Container(CoreModule, config=config)
