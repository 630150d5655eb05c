import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Set, Union

from pydantic import ValidationError as SchemaError
from sqlalchemy import insert, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from konbase.database import (
    ModuleConfigurationRecord,
    ModuleManifestRecord,
    ModuleMigrationRecord,
    create_tables,
)
from konbase.logger import get_logger
from .errors import (
    DependencyError,
    HookError,
    InitializationError,
    MigrationError,
    ModuleError,
    ModuleNotFoundError,
    PersistenceError,
    ValidationError,
)
from .models import (
    MigrationRecord,
    ModuleConfiguration,
    ModuleManifest,
    ModuleMigration,
    OperationResult,
    build_settings_model,
    utcnow,
)
from .registry import ModuleRegistry

log = get_logger("ModuleService")

def _aware(value: datetime):
    # SQLite liefert naive Datetimes zurück, wir speichern immer UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

class ModuleService:
    """
    Persistence-Gateway: die einzige Komponente, die mit dem Store redet.
    Synchronisiert Manifeste und Konfigurationen und wendet Migrationen an.
    """
    def __init__(self, registry: ModuleRegistry, engine):
        self.registry = registry
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        # Stand des Stores: { "module_id": ModuleManifest }
        self.persisted = {}
        self._locks = {}
        self._restore_failed = set()

    def _lock(self, module_id: str) -> asyncio.Lock:
        if module_id not in self._locks:
            self._locks[module_id] = asyncio.Lock()
        return self._locks[module_id]

    # ==========================================
    # BOOTSTRAP
    # ==========================================
    async def initialize(self) -> bool:
        if self.registry.initialized:
            return True

        log.info("🗄️ Initialisiere Modul-Store...")
        try:
            create_tables(self.engine)
            self.persisted = {m.id: m for m in await self.load_manifests()}
        except (SQLAlchemyError, PersistenceError) as e:
            log.error(f"❌ Modul-Store konnte nicht initialisiert werden: {e}")
            raise InitializationError(f"Modul-Store konnte nicht initialisiert werden: {e}") from e

        log.info(f"📦 {len(self.persisted)} Modul-Manifeste aus dem Store geladen.")

        # Module, die sich schon vor dem Init registriert haben
        try:
            for module_id in [m.id for m in self.registry.list_manifests()]:
                await self.reconcile(module_id)
        except PersistenceError as e:
            raise InitializationError(f"Abgleich mit dem Store fehlgeschlagen: {e}") from e

        self.registry.initialized = True
        await self.restore_enabled()
        log.info("✅ Modul-System initialisiert.")
        return True

    async def reconcile(self, module_id: str):
        """Gleicht ein frisch registriertes Modul mit seinem gespeicherten Manifest ab."""
        manifest = self.registry.get_manifest(module_id)
        if manifest is None:
            raise ModuleNotFoundError(f"Modul '{module_id}' ist nicht registriert", module_id=module_id)

        persisted = self.persisted.get(module_id)
        if persisted is None:
            # Erstinstallation: Zeile anlegen, das Ledger referenziert sie
            await self.save_manifest(manifest)
            return

        self.registry.apply_persisted_state(module_id, persisted)

        if persisted.version != manifest.version:
            log.info(f"⬆️ Update erkannt: {manifest.name} v{persisted.version} -> v{manifest.version}")
            hook_error = self.registry.call_hook(
                module_id, self.registry.get(module_id), "on_update", persisted.version
            )
            if hook_error:
                # Alte Version bleibt gültig, bis der Hook beim nächsten Boot durchläuft
                log.error(f"❌ {hook_error}")
                self.registry.pin_version(module_id, persisted.version)
                return
            self.registry.touch(module_id)
            await self.save_manifest(manifest.model_copy(update={"is_enabled": persisted.is_enabled}))

    async def restore_enabled(self) -> List[str]:
        """
        Aktiviert alle registrierten Module wieder, die laut Store aktiv waren.
        Läuft so lange, bis sich nichts mehr tut, damit die Reihenfolge der
        Abhängigkeiten egal ist.
        """
        restored = []
        progress = True
        while progress:
            progress = False
            for manifest in self.registry.list_manifests():
                persisted = self.persisted.get(manifest.id)
                if manifest.is_enabled or not persisted or not persisted.is_enabled:
                    continue
                if manifest.id in self._restore_failed:
                    continue
                if not all(self.registry.is_enabled(req) for req in manifest.requires):
                    continue

                try:
                    result = await self.enable_module(manifest.id)
                except ModuleError as e:
                    result = OperationResult.failure(e)

                if result:
                    restored.append(manifest.id)
                    progress = True
                else:
                    self._restore_failed.add(manifest.id)
                    log.error(f"❌ Modul {manifest.name} konnte nicht reaktiviert werden: {result.message}")

        if restored:
            log.info(f"🔁 Reaktiviert: {', '.join(restored)}")
        return restored

    # ==========================================
    # MANIFESTE
    # ==========================================
    def _manifest_from_record(self, rec: ModuleManifestRecord) -> ModuleManifest:
        return ModuleManifest(
            id=rec.id,
            name=rec.name,
            version=rec.version,
            description=rec.description or "",
            author=rec.author or "Unknown",
            requires=rec.requires or [],
            permissions=rec.permissions or [],
            is_enabled=bool(rec.is_enabled),
            install_date=_aware(rec.install_date) or utcnow(),
            update_date=_aware(rec.update_date) or utcnow(),
        )

    async def load_manifests(self) -> List[ModuleManifest]:
        try:
            with self.SessionLocal() as db:
                records = db.execute(select(ModuleManifestRecord)).scalars().all()
                return [self._manifest_from_record(r) for r in records]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Manifeste konnten nicht geladen werden: {e}") from e

    async def save_manifest(self, manifest: ModuleManifest) -> bool:
        """Upsert über die ID."""
        try:
            with self.SessionLocal() as db:
                rec = db.get(ModuleManifestRecord, manifest.id)
                if rec is None:
                    rec = ModuleManifestRecord(id=manifest.id)
                    db.add(rec)
                rec.name = manifest.name
                rec.version = manifest.version
                rec.description = manifest.description
                rec.author = manifest.author
                rec.requires = list(manifest.requires)
                rec.permissions = list(manifest.permissions)
                rec.is_enabled = manifest.is_enabled
                rec.install_date = manifest.install_date
                rec.update_date = manifest.update_date
                db.commit()
        except SQLAlchemyError as e:
            log.error(f"❌ Manifest '{manifest.id}' konnte nicht gespeichert werden: {e}")
            raise PersistenceError(f"Manifest '{manifest.id}' konnte nicht gespeichert werden: {e}",
                                   module_id=manifest.id) from e

        self.persisted[manifest.id] = manifest.model_copy(deep=True)
        return True

    async def _ensure_manifest_row(self, module_id: str):
        if module_id not in self.persisted:
            await self.save_manifest(self.registry.get_manifest(module_id))

    # ==========================================
    # MIGRATIONEN
    # ==========================================
    async def list_migration_records(self, module_id: str) -> List[MigrationRecord]:
        try:
            with self.SessionLocal() as db:
                rows = db.execute(
                    select(ModuleMigrationRecord)
                    .where(ModuleMigrationRecord.module_id == module_id)
                    .order_by(ModuleMigrationRecord.id)
                ).scalars().all()
                return [
                    MigrationRecord(
                        id=r.id,
                        module_id=r.module_id,
                        version=r.version,
                        description=r.description,
                        applied_at=_aware(r.applied_at),
                    )
                    for r in rows
                ]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Migrations-Ledger für '{module_id}' nicht lesbar: {e}",
                                   module_id=module_id) from e

    async def get_applied_versions(self, module_id: str) -> Set[str]:
        return {r.version for r in await self.list_migration_records(module_id)}

    def _declared_migrations(self, module_id: str, module) -> List[ModuleMigration]:
        try:
            raw = module.get_migrations() or []
        except Exception as e:
            raise HookError(module_id, "get_migrations", e) from e

        migrations = self._normalize_migrations(module_id, raw)
        versions = [m.version for m in migrations]
        duplicates = {v for v in versions if versions.count(v) > 1}
        if duplicates:
            raise ValidationError(
                f"Modul '{module_id}' deklariert Migrationsversionen mehrfach: {', '.join(sorted(duplicates))}",
                module_id=module_id,
            )
        return migrations

    def _normalize_migrations(self, module_id: str, migrations) -> List[ModuleMigration]:
        try:
            return [m if isinstance(m, ModuleMigration) else ModuleMigration.model_validate(m)
                    for m in migrations]
        except SchemaError as e:
            raise ValidationError(f"Ungültige Migration in Modul '{module_id}': {e}",
                                  module_id=module_id) from e

    async def apply_migrations(self, module_id: str, migrations: List[Union[ModuleMigration, Dict[str, Any]]]) -> int:
        """
        Wendet alle noch nicht angewendeten Migrationen in der deklarierten
        Reihenfolge an. Bricht bei der ersten fehlerhaften ab, spätere werden
        nicht vorgezogen. Gibt die Anzahl der neu angewendeten zurück.
        """
        migrations = self._normalize_migrations(module_id, migrations)
        # Das Ledger referenziert die Manifest-Zeile
        if self.registry.get(module_id) is not None:
            await self._ensure_manifest_row(module_id)
        applied = await self.get_applied_versions(module_id)

        count = 0
        for migration in migrations:
            if migration.version in applied:
                continue

            log.info(f"🛠️ Wende Migration {migration.version} für Modul {module_id} an...")
            try:
                # Operation und Ledger-Zeile in einer Transaktion (MySQL committet DDL trotzdem sofort)
                with self.engine.begin() as conn:
                    if migration.operation is not None:
                        migration.operation(conn)
                    else:
                        conn.execute(text(migration.sql))
                    conn.execute(
                        insert(ModuleMigrationRecord).values(
                            module_id=module_id,
                            version=migration.version,
                            description=migration.description,
                            applied_at=utcnow(),
                        )
                    )
            except Exception as e:
                log.error(f"❌ Migration {migration.version} für Modul {module_id} fehlgeschlagen: {e}")
                raise MigrationError(module_id, migration.version, e) from e

            applied.add(migration.version)
            count += 1
            log.info(f"✅ Migration {migration.version} für Modul {module_id} angewendet.")

        return count

    # ==========================================
    # ENABLE / DISABLE
    # ==========================================
    def _require_module(self, module_id: str):
        module = self.registry.get(module_id)
        if module is None:
            raise ModuleNotFoundError(f"Modul '{module_id}' ist nicht registriert", module_id=module_id)
        return module

    def _check_requirements(self, module_id: str):
        manifest = self.registry.get_manifest(module_id)
        for req in manifest.requires:
            if self.registry.get(req) is None:
                raise DependencyError(
                    f"Modul '{module_id}' benötigt '{req}', das nicht registriert ist", module_id=module_id
                )
            if not self.registry.is_enabled(req):
                raise DependencyError(
                    f"Modul '{module_id}' benötigt '{req}', das nicht aktiv ist", module_id=module_id
                )

    async def enable_module(self, module_id: str) -> OperationResult:
        """Migrationen -> Registry-Flag -> Manifest speichern, strikt in dieser Reihenfolge."""
        module = self._require_module(module_id)

        async with self._lock(module_id):
            self._check_requirements(module_id)
            await self._ensure_manifest_row(module_id)

            # 1. Migrationen. Schlägt das fehl, bleibt die Registry unberührt.
            await self.apply_migrations(module_id, self._declared_migrations(module_id, module))

            # 2. Hook + Flag
            result = self.registry.set_enabled(module_id, True)
            if not result:
                return result

            # 3. Persistieren, sonst das Flag wieder zurücknehmen
            try:
                await self.save_manifest(self.registry.get_manifest(module_id))
            except PersistenceError:
                revert = self.registry.set_enabled(module_id, False)
                if not revert:
                    log.error(f"❌ Rücknahme von '{module_id}' fehlgeschlagen, Flag wird hart zurückgesetzt.")
                    self.registry.mark_disabled(module_id)
                raise

            return result

    async def disable_module(self, module_id: str) -> OperationResult:
        """Reiner Verfügbarkeits-Schalter, Migrationen werden nie zurückgerollt."""
        self._require_module(module_id)

        async with self._lock(module_id):
            dependents = [
                m.id for m in self.registry.list_manifests()
                if m.is_enabled and m.id != module_id and module_id in m.requires
            ]
            if dependents:
                raise DependencyError(
                    f"Modul '{module_id}' wird noch benötigt von: {', '.join(dependents)}", module_id=module_id
                )

            result = self.registry.set_enabled(module_id, False)
            if not result:
                return result

            try:
                await self.save_manifest(self.registry.get_manifest(module_id))
            except PersistenceError:
                revert = self.registry.set_enabled(module_id, True)
                if not revert:
                    log.error(f"❌ Rücknahme der Deaktivierung von '{module_id}' fehlgeschlagen: {revert.message}")
                raise

            return result

    # ==========================================
    # KONFIGURATION
    # ==========================================
    def validate_settings(self, module_id: str, settings: Dict[str, Any]):
        module = self._require_module(module_id)
        try:
            schema = module.get_configuration_schema()
        except Exception as e:
            raise ValidationError(f"Konfigurationsschema von '{module_id}' nicht lesbar: {e}",
                                  module_id=module_id) from e
        if not schema:
            return

        settings_model = build_settings_model(module_id, schema)
        try:
            settings_model.model_validate(settings)
        except SchemaError as e:
            raise ValidationError(f"Ungültige Einstellungen für '{module_id}': {e}", module_id=module_id) from e

    async def get_configuration(self, module_id: str) -> ModuleConfiguration:
        try:
            with self.SessionLocal() as db:
                rec = db.get(ModuleConfigurationRecord, module_id)
                if rec is None:
                    return ModuleConfiguration(module_id=module_id)
                return ModuleConfiguration(
                    module_id=rec.module_id,
                    settings=rec.settings or {},
                    last_updated=_aware(rec.last_updated) or utcnow(),
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Konfiguration für '{module_id}' nicht lesbar: {e}",
                                   module_id=module_id) from e

    async def save_configuration(self, config: Union[ModuleConfiguration, Dict[str, Any]]) -> ModuleConfiguration:
        if not isinstance(config, ModuleConfiguration):
            try:
                config = ModuleConfiguration.model_validate(config)
            except SchemaError as e:
                raise ValidationError(f"Ungültige Konfiguration: {e}") from e

        self.validate_settings(config.module_id, config.settings)
        await self._ensure_manifest_row(config.module_id)

        saved = ModuleConfiguration(module_id=config.module_id, settings=dict(config.settings))
        try:
            with self.SessionLocal() as db:
                rec = db.get(ModuleConfigurationRecord, saved.module_id)
                if rec is None:
                    rec = ModuleConfigurationRecord(module_id=saved.module_id)
                    db.add(rec)
                rec.settings = saved.settings
                rec.last_updated = saved.last_updated
                db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Konfiguration für '{saved.module_id}' nicht gespeichert: {e}",
                                   module_id=saved.module_id) from e

        log.info(f"💾 Konfiguration für {saved.module_id} gespeichert.")
        return saved
