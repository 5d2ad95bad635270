"""Create legal corpus, ingestion ledger and detection tables

Revision ID: 0001_legalwatch_tables
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_legalwatch_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all LegalWatch tables."""

    # Legal corpus
    op.create_table(
        'legal_instruments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('instrument_uid', sa.String(255), nullable=False, unique=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('abbreviation', sa.String(30), nullable=True),
        sa.Column('jurisdiction', sa.String(10), nullable=False, server_default='CH'),
        sa.Column('domain_tags', sa.JSON, nullable=False),
        sa.Column('authority', sa.String(100), nullable=True),
        sa.Column('current_status', sa.String(20), nullable=False, server_default='in_force'),
        sa.Column('repealed_by_instrument_uid', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_legal_instruments_instrument_uid', 'legal_instruments', ['instrument_uid'])
    op.create_index('ix_legal_instruments_abbreviation', 'legal_instruments', ['abbreviation'])
    op.create_index('ix_legal_instruments_jurisdiction', 'legal_instruments', ['jurisdiction'])
    op.create_index('ix_legal_instruments_current_status', 'legal_instruments', ['current_status'])

    op.create_table(
        'legal_versions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('instrument_id', sa.String(36), sa.ForeignKey('legal_instruments.id'), nullable=False),
        sa.Column('version_number', sa.Integer, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='in_force'),
        sa.Column('valid_from', sa.Date, nullable=False),
        sa.Column('valid_to', sa.Date, nullable=True),
        sa.Column('consolidated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('source_set_hash', sa.String(64), nullable=False),
        sa.UniqueConstraint('instrument_id', 'version_number', name='uq_legal_versions_instrument_number'),
    )
    op.create_index('ix_legal_versions_instrument_id', 'legal_versions', ['instrument_id'])

    op.create_table(
        'legal_units',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('version_id', sa.String(36), sa.ForeignKey('legal_versions.id'), nullable=False),
        sa.Column('instrument_id', sa.String(36), sa.ForeignKey('legal_instruments.id'), nullable=False),
        sa.Column('cite_key', sa.String(100), nullable=False),
        sa.Column('unit_type', sa.String(20), nullable=False),
        sa.Column('article_number', sa.String(20), nullable=True),
        sa.Column('paragraph_number', sa.String(10), nullable=True),
        sa.Column('letter', sa.String(5), nullable=True),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('content_text', sa.Text, nullable=False),
        sa.Column('hash_sha256', sa.String(64), nullable=False),
        sa.Column('keywords', sa.JSON, nullable=False),
        sa.Column('order_index', sa.Integer, nullable=False),
        sa.Column('is_key_unit', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('version_id', 'cite_key', name='uq_legal_units_version_cite_key'),
    )
    op.create_index('ix_legal_units_version_id', 'legal_units', ['version_id'])
    op.create_index('ix_legal_units_instrument_id', 'legal_units', ['instrument_id'])
    op.create_index('ix_legal_units_cite_key', 'legal_units', ['cite_key'])
    op.create_index('ix_legal_units_hash_sha256', 'legal_units', ['hash_sha256'])

    op.create_table(
        'legal_sources',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('version_id', sa.String(36), sa.ForeignKey('legal_versions.id'), nullable=False),
        sa.Column('source_url', sa.String(1000), nullable=False),
        sa.Column('source_type', sa.String(30), nullable=False, server_default='official'),
        sa.Column('authority', sa.String(100), nullable=True),
        sa.Column('is_primary', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('checksum', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_legal_sources_version_id', 'legal_sources', ['version_id'])

    op.create_table(
        'source_catalog',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('source_url', sa.String(1000), nullable=False, unique=True),
        sa.Column('source_type', sa.String(30), nullable=False, server_default='html'),
        sa.Column('authority', sa.String(100), nullable=True),
        sa.Column('jurisdiction', sa.String(10), nullable=False, server_default='CH'),
        sa.Column('domain_tags', sa.JSON, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_source_catalog_jurisdiction', 'source_catalog', ['jurisdiction'])

    # Ingestion ledger
    op.create_table(
        'ingestion_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('run_type', sa.String(20), nullable=False),
        sa.Column('jurisdiction_scope', sa.String(10), nullable=False, server_default='ALL'),
        sa.Column('status', sa.String(30), nullable=False, server_default='running'),
        sa.Column('items_total', sa.Integer, nullable=False, server_default='0'),
        sa.Column('items_success', sa.Integer, nullable=False, server_default='0'),
        sa.Column('items_failed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('items_skipped', sa.Integer, nullable=False, server_default='0'),
        sa.Column('error_summary', sa.JSON, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'ingestion_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('run_id', sa.String(36), sa.ForeignKey('ingestion_runs.id'), nullable=False),
        sa.Column('source_url', sa.String(1000), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('instrument_uid', sa.String(255), nullable=True),
        sa.Column('raw_content_hash', sa.String(64), nullable=True),
        sa.Column('units_created', sa.Integer, nullable=False, server_default='0'),
        sa.Column('processing_time_ms', sa.Integer, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_ingestion_items_run_id', 'ingestion_items', ['run_id'])
    op.create_index('ix_ingestion_items_source_url', 'ingestion_items', ['source_url'])
    op.create_index('ix_ingestion_items_status', 'ingestion_items', ['status'])
    op.create_index('ix_ingestion_items_created_at', 'ingestion_items', ['created_at'])

    op.create_table(
        'ingestion_errors',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('run_id', sa.String(36), sa.ForeignKey('ingestion_runs.id'), nullable=False),
        sa.Column('source_url', sa.String(1000), nullable=False),
        sa.Column('error_type', sa.String(30), nullable=False, server_default='processing'),
        sa.Column('error_message', sa.Text, nullable=False),
        sa.Column('recoverable', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_ingestion_errors_run_id', 'ingestion_errors', ['run_id'])

    # Correspondence & detection
    op.create_table(
        'communication_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('sender', sa.String(255), nullable=False),
        sa.Column('recipient', sa.String(255), nullable=True),
        sa.Column('subject', sa.String(500), nullable=False, server_default=''),
        sa.Column('body', sa.Text, nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('thread_id', sa.String(100), nullable=True),
        sa.Column('is_sent', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('analysis', sa.JSON, nullable=True),
        sa.Column('analysis_status', sa.String(30), nullable=True),
        sa.Column('analyzed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_communication_records_sender', 'communication_records', ['sender'])
    op.create_index('ix_communication_records_received_at', 'communication_records', ['received_at'])
    op.create_index('ix_communication_records_thread_id', 'communication_records', ['thread_id'])
    op.create_index('ix_communication_records_analysis_status', 'communication_records', ['analysis_status'])

    op.create_table(
        'recurrence_patterns',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('institution', sa.String(255), nullable=False),
        sa.Column('violation_type', sa.String(50), nullable=False),
        sa.Column('occurrence_count', sa.Integer, nullable=False, server_default='1'),
        sa.Column('first_occurrence', sa.Date, nullable=False),
        sa.Column('last_occurrence', sa.Date, nullable=False),
        sa.Column('related_record_ids', sa.JSON, nullable=False),
        sa.Column('legal_implications', sa.Text, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('institution', 'violation_type', name='uq_recurrence_institution_type'),
    )
    op.create_index('ix_recurrence_patterns_institution', 'recurrence_patterns', ['institution'])

    op.create_table(
        'incidents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('facts', sa.Text, nullable=False),
        sa.Column('dysfunction', sa.Text, nullable=False),
        sa.Column('institution', sa.String(255), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('severity_label', sa.String(20), nullable=False),
        sa.Column('priority_label', sa.String(20), nullable=False),
        sa.Column('incident_date', sa.Date, nullable=False),
        sa.Column('source_record_id', sa.String(36), sa.ForeignKey('communication_records.id'), nullable=False),
        sa.Column('confidence_label', sa.String(10), nullable=False),
        sa.Column('score', sa.Integer, nullable=False),
        sa.Column('evidence_payload', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('source_record_id', 'type', name='uq_incidents_record_type'),
    )
    op.create_index('ix_incidents_institution', 'incidents', ['institution'])
    op.create_index('ix_incidents_source_record_id', 'incidents', ['source_record_id'])

    op.create_table(
        'audit_alerts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('alert_type', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('related_incident_id', sa.String(36), sa.ForeignKey('incidents.id'), nullable=False),
        sa.Column('related_record_id', sa.String(36), sa.ForeignKey('communication_records.id'), nullable=False),
        sa.Column('legal_references', sa.JSON, nullable=False),
        sa.Column('is_resolved', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_alerts_related_incident_id', 'audit_alerts', ['related_incident_id'])


def downgrade() -> None:
    """Drop all LegalWatch tables."""
    op.drop_table('audit_alerts')
    op.drop_table('incidents')
    op.drop_table('recurrence_patterns')
    op.drop_table('communication_records')
    op.drop_table('ingestion_errors')
    op.drop_table('ingestion_items')
    op.drop_table('ingestion_runs')
    op.drop_table('source_catalog')
    op.drop_table('legal_sources')
    op.drop_table('legal_units')
    op.drop_table('legal_versions')
    op.drop_table('legal_instruments')
