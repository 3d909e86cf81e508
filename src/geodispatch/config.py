"""Service configuration for geodispatch."""

from __future__ import annotations

import dataclasses
import enum
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from geodispatch._constants import (
    DATASTORE_SCOPE,
    DEFAULT_PRECISION,
    FIRESTORE_BASE_URL,
    FIRESTORE_IN_LIMIT,
    GOOGLE_TOKEN_URI,
    MAX_PRECISION,
    ONESIGNAL_API_URL,
)
from geodispatch.exceptions import ConfigError


class StoreFailurePolicy(enum.StrEnum):
    """What the orchestrator does when the provider query fails."""

    FAIL_OPEN = "fail_open"
    """Treat the failure as "no providers found"."""

    FAIL_CLOSED = "fail_closed"
    """Surface the failure as a server error."""


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc


def _env_int(env: Mapping[str, str], key: str) -> int | None:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class SearchConfig:
    """Spatial search tuning.

    Parameters
    ----------
    precision : int
        Geohash length used to encode the request location. Must match the
        precision providers were tagged with.
    min_precision : int
        Keys shorter than this are not expanded into a neighborhood.
    max_precision : int
        Longest caller-supplied geohash accepted by the orchestrator.
    neighbor_step_degrees : float or None
        Fixed offset used for neighbor expansion. ``None`` derives the step
        from the decoded cell size, which stays correct at every latitude.
    in_predicate_limit : int
        Maximum number of values the store accepts in one ``IN`` filter.
    max_providers : int or None
        Optional cap on the number of provider documents returned.
    """

    precision: int = DEFAULT_PRECISION
    min_precision: int = 1
    max_precision: int = MAX_PRECISION
    neighbor_step_degrees: float | None = None
    in_predicate_limit: int = FIRESTORE_IN_LIMIT
    max_providers: int | None = None

    def __post_init__(self) -> None:
        if self.precision < 1:
            raise ConfigError(f"precision must be >= 1, got {self.precision}")
        if self.min_precision < 1:
            raise ConfigError(f"min_precision must be >= 1, got {self.min_precision}")
        if not self.min_precision <= self.precision <= self.max_precision:
            raise ConfigError(
                f"precision must be between min_precision and max_precision, got {self.precision}"
            )
        if self.in_predicate_limit < 1:
            raise ConfigError(f"in_predicate_limit must be >= 1, got {self.in_predicate_limit}")
        if self.neighbor_step_degrees is not None and self.neighbor_step_degrees <= 0:
            raise ConfigError(f"neighbor_step_degrees must be positive, got {self.neighbor_step_degrees}")
        if self.max_providers is not None and self.max_providers < 1:
            raise ConfigError(f"max_providers must be >= 1, got {self.max_providers}")


@dataclasses.dataclass(frozen=True)
class ProviderSchema:
    """Field names agreed with the external provider registry.

    Registry versions disagree on these names (``services`` vs
    ``servicesOffered``, ``oneSignalPlayerId`` vs
    ``oneSignalSubscriptionId``), so none of them is hard-coded.
    Set ``availability_field`` to ``None`` to skip the availability filter.
    """

    collection: str = "providers"
    geohash_field: str = "geohash"
    services_field: str = "services"
    availability_field: str | None = "acceptingRequests"
    recipient_field: str = "oneSignalSubscriptionId"


@dataclasses.dataclass(frozen=True)
class ServiceAccount:
    """Service-account identity used to mint store bearer tokens."""

    client_email: str
    private_key: str = dataclasses.field(repr=False)
    private_key_id: str | None = None
    token_uri: str = GOOGLE_TOKEN_URI
    scope: str = DATASTORE_SCOPE

    @classmethod
    def from_file(cls, path: str | Path) -> ServiceAccount:
        """Load a Google service-account JSON key file."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Cannot read service account file {path}: {exc}") from exc
        if not isinstance(data, dict) or not data.get("client_email") or not data.get("private_key"):
            raise ConfigError(f"Service account file {path} is missing client_email/private_key")
        return cls(
            client_email=str(data["client_email"]),
            private_key=str(data["private_key"]),
            private_key_id=data.get("private_key_id"),
            token_uri=str(data.get("token_uri") or GOOGLE_TOKEN_URI),
        )


@dataclasses.dataclass(frozen=True)
class StoreConfig:
    """Firestore connection settings.

    Either ``api_key`` or a :class:`ServiceAccount` (on
    :class:`DispatchConfig`) must be available to authenticate queries.
    """

    project_id: str
    database: str = "(default)"
    api_key: str | None = dataclasses.field(default=None, repr=False)
    base_url: str = FIRESTORE_BASE_URL
    timeout: float = 10.0
    failure_policy: StoreFailurePolicy = StoreFailurePolicy.FAIL_OPEN

    @property
    def run_query_url(self) -> str:
        return f"{self.base_url}/projects/{self.project_id}/databases/{self.database}/documents:runQuery"


@dataclasses.dataclass(frozen=True)
class MessageTemplate:
    """Notification text.

    ``title`` and ``body`` are ``str.format`` templates receiving
    ``service``, ``user_name`` and ``location_description``. When a location
    description is supplied and the body template does not use it, it is
    appended to the body as `` at <place>``.
    """

    title: str = "New {service} request nearby"
    body: str = "{user_name} needs help"
    default_user_name: str = "Someone"

    def render(
        self,
        service: str,
        user_name: str | None = None,
        location_description: str | None = None,
    ) -> tuple[str, str]:
        values = {
            "service": service,
            "user_name": user_name or self.default_user_name,
            "location_description": location_description or "",
        }
        try:
            title = self.title.format(**values)
            body = self.body.format(**values)
        except (KeyError, IndexError, ValueError) as exc:
            raise ConfigError(f"Invalid notification template: {exc}") from exc
        if location_description and "{location_description}" not in self.body:
            body = f"{body} at {location_description}"
        return title, body


@dataclasses.dataclass(frozen=True)
class PushConfig:
    """OneSignal settings."""

    app_id: str
    rest_api_key: str = dataclasses.field(repr=False)
    api_url: str = ONESIGNAL_API_URL
    recipient_target: str = "include_subscription_ids"
    language: str = "en"
    template: MessageTemplate = dataclasses.field(default_factory=MessageTemplate)
    timeout: float = 10.0


@dataclasses.dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    path: str = "/"


@dataclasses.dataclass(frozen=True)
class DispatchConfig:
    """Top-level configuration.

    Parameters
    ----------
    store : StoreConfig
        Firestore connection settings.
    push : PushConfig
        Push gateway settings.
    search : SearchConfig
        Spatial search tuning.
    schema : ProviderSchema
        Provider document field names.
    service_account : ServiceAccount or None
        Enables bearer-token auth against the store. Without it the store
        is queried with ``store.api_key``.
    token_refresh_margin_seconds : float
        Cached tokens closer than this to expiry are refreshed.
    token_lifetime_seconds : int
        Validity requested for each signed assertion.
    token_timeout : float
        Timeout for the token exchange call.
    server : ServerConfig
        Inbound HTTP listener.
    """

    store: StoreConfig
    push: PushConfig
    search: SearchConfig = dataclasses.field(default_factory=SearchConfig)
    schema: ProviderSchema = dataclasses.field(default_factory=ProviderSchema)
    service_account: ServiceAccount | None = None
    token_refresh_margin_seconds: float = 300.0
    token_lifetime_seconds: int = 3600
    token_timeout: float = 10.0
    server: ServerConfig = dataclasses.field(default_factory=ServerConfig)

    def __post_init__(self) -> None:
        if self.service_account is None and not self.store.api_key:
            raise ConfigError("Either a service account or a store API key is required")
        if self.token_refresh_margin_seconds < 0:
            raise ConfigError("token_refresh_margin_seconds must not be negative")
        if self.token_lifetime_seconds <= self.token_refresh_margin_seconds:
            raise ConfigError("token_lifetime_seconds must exceed token_refresh_margin_seconds")

    @classmethod
    def from_env(cls, **overrides: Any) -> DispatchConfig:
        """Create configuration from environment variables.

        Reads ``GEODISPATCH_*`` variables and falls back to the names used by
        the earlier edge deployment (``FIRESTORE_PROJECT_ID``,
        ``FIRESTORE_API_KEY``, ``ONESIGNAL_APP_ID``, ``ONESIGNAL_REST_KEY``).
        Explicit keyword arguments override environment values.

        Raises
        ------
        ConfigError
            If a required value is missing or malformed.
        """
        env = os.environ

        def pick(*keys: str) -> str | None:
            for key in keys:
                val = env.get(key)
                if val is not None and val.strip():
                    return val.strip()
            return None

        if "store" not in overrides:
            project_id = pick("GEODISPATCH_FIRESTORE_PROJECT_ID", "FIRESTORE_PROJECT_ID")
            if not project_id:
                raise ConfigError("FIRESTORE_PROJECT_ID is not set")
            store_kwargs: dict[str, Any] = {"project_id": project_id}
            api_key = pick("GEODISPATCH_FIRESTORE_API_KEY", "FIRESTORE_API_KEY")
            if api_key:
                store_kwargs["api_key"] = api_key
            database = pick("GEODISPATCH_FIRESTORE_DATABASE")
            if database:
                store_kwargs["database"] = database
            store_timeout = _env_float(env, "GEODISPATCH_STORE_TIMEOUT")
            if store_timeout is not None:
                store_kwargs["timeout"] = store_timeout
            policy = pick("GEODISPATCH_STORE_FAILURE_POLICY")
            if policy:
                try:
                    store_kwargs["failure_policy"] = StoreFailurePolicy(policy.lower())
                except ValueError as exc:
                    raise ConfigError(f"Unknown store failure policy {policy!r}") from exc
            overrides["store"] = StoreConfig(**store_kwargs)

        if "push" not in overrides:
            app_id = pick("GEODISPATCH_ONESIGNAL_APP_ID", "ONESIGNAL_APP_ID")
            rest_key = pick("GEODISPATCH_ONESIGNAL_REST_KEY", "ONESIGNAL_REST_KEY")
            if not app_id or not rest_key:
                raise ConfigError("ONESIGNAL_APP_ID and ONESIGNAL_REST_KEY are required")
            push_kwargs: dict[str, Any] = {"app_id": app_id, "rest_api_key": rest_key}
            target = pick("GEODISPATCH_PUSH_RECIPIENT_TARGET")
            if target:
                push_kwargs["recipient_target"] = target
            push_timeout = _env_float(env, "GEODISPATCH_PUSH_TIMEOUT")
            if push_timeout is not None:
                push_kwargs["timeout"] = push_timeout
            overrides["push"] = PushConfig(**push_kwargs)

        if "service_account" not in overrides:
            sa_file = pick("GEODISPATCH_SERVICE_ACCOUNT_FILE", "GOOGLE_APPLICATION_CREDENTIALS")
            client_email = pick("GEODISPATCH_CLIENT_EMAIL", "FIRESTORE_CLIENT_EMAIL")
            private_key = pick("GEODISPATCH_PRIVATE_KEY", "FIRESTORE_PRIVATE_KEY")
            if sa_file:
                overrides["service_account"] = ServiceAccount.from_file(sa_file)
            elif client_email and private_key:
                # Keys pasted into env vars usually carry literal "\n" sequences.
                overrides["service_account"] = ServiceAccount(
                    client_email=client_email,
                    private_key=private_key.replace("\\n", "\n"),
                    private_key_id=pick("GEODISPATCH_PRIVATE_KEY_ID"),
                )

        if "search" not in overrides:
            search_kwargs: dict[str, Any] = {}
            for env_key, field_name in {
                "GEODISPATCH_PRECISION": "precision",
                "GEODISPATCH_MIN_PRECISION": "min_precision",
                "GEODISPATCH_MAX_PRECISION": "max_precision",
                "GEODISPATCH_IN_PREDICATE_LIMIT": "in_predicate_limit",
                "GEODISPATCH_MAX_PROVIDERS": "max_providers",
            }.items():
                int_val = _env_int(env, env_key)
                if int_val is not None:
                    search_kwargs[field_name] = int_val
            step = _env_float(env, "GEODISPATCH_NEIGHBOR_STEP_DEGREES")
            if step is not None:
                search_kwargs["neighbor_step_degrees"] = step
            overrides["search"] = SearchConfig(**search_kwargs)

        if "schema" not in overrides:
            schema_kwargs: dict[str, Any] = {}
            for env_key, field_name in {
                "GEODISPATCH_PROVIDER_COLLECTION": "collection",
                "GEODISPATCH_GEOHASH_FIELD": "geohash_field",
                "GEODISPATCH_SERVICES_FIELD": "services_field",
                "GEODISPATCH_RECIPIENT_FIELD": "recipient_field",
            }.items():
                val = pick(env_key)
                if val:
                    schema_kwargs[field_name] = val
            availability = env.get("GEODISPATCH_AVAILABILITY_FIELD")
            if availability is not None:
                # An empty value disables the availability filter.
                schema_kwargs["availability_field"] = availability.strip() or None
            overrides["schema"] = ProviderSchema(**schema_kwargs)

        if "server" not in overrides:
            server_kwargs: dict[str, Any] = {}
            host = pick("GEODISPATCH_HOST")
            if host:
                server_kwargs["host"] = host
            port = _env_int(env, "GEODISPATCH_PORT") or _env_int(env, "PORT")
            if port is not None:
                server_kwargs["port"] = port
            overrides["server"] = ServerConfig(**server_kwargs)

        margin = _env_float(env, "GEODISPATCH_TOKEN_REFRESH_MARGIN")
        if margin is not None and "token_refresh_margin_seconds" not in overrides:
            overrides["token_refresh_margin_seconds"] = margin

        return cls(**overrides)
