"""create document and chat schema

Revision ID: 3b9c1f0a7d21
Revises:
Create Date: 2026-10-19 09:12:44.518302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector


# revision identifiers, used by Alembic.
revision: str = '3b9c1f0a7d21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIM = 1536


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    document_status = postgresql.ENUM(
        'uploaded', 'queued', 'processing', 'awaiting_credit', 'completed', 'failed',
        name='documentstatus', create_type=False,
    )
    job_stage = postgresql.ENUM(
        'ingest', 'ocr', 'annotation', 'vectorization', 'embed', 'finalize',
        name='jobstage', create_type=False,
    )
    job_status = postgresql.ENUM('queued', 'processing', 'done', 'failed', name='jobstatus', create_type=False)
    hold_status = postgresql.ENUM('active', 'consumed', 'released', name='holdstatus', create_type=False)
    message_role = postgresql.ENUM('user', 'assistant', name='messagerole', create_type=False)
    for enum_type in (document_status, job_stage, job_status, hold_status, message_role):
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'document',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('content_hash', sa.String(64), nullable=False),
        sa.Column('filename', sa.String(512), nullable=False),
        sa.Column('mime_type', sa.String(255), nullable=False),
        sa.Column('size_bytes', sa.Integer(), nullable=False),
        sa.Column('storage_path', sa.String(1024), nullable=False),
        sa.Column('status', document_status, nullable=False, server_default='uploaded'),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index(op.f('ix_document_owner_id'), 'document', ['owner_id'])
    op.create_index(op.f('ix_document_content_hash'), 'document', ['content_hash'], unique=True)
    op.create_index(op.f('ix_document_status'), 'document', ['status'])

    op.create_table(
        'processing_job',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('document_id', sa.String(36), sa.ForeignKey('document.id', ondelete='CASCADE'), nullable=False),
        sa.Column('stage', job_stage, nullable=False),
        sa.Column('status', job_status, nullable=False, server_default='queued'),
        sa.Column('input_data', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('output_data', postgresql.JSONB(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f('ix_processing_job_document_id'), 'processing_job', ['document_id'])
    op.create_index(
        'uq_processing_job_active_stage',
        'processing_job',
        ['document_id', 'stage'],
        unique=True,
        postgresql_where=sa.text("status IN ('queued', 'processing')"),
    )

    op.create_table(
        'processing_hold',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('document_id', sa.String(36), sa.ForeignKey('document.id', ondelete='CASCADE'), nullable=False),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('status', hold_status, nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f('ix_processing_hold_document_id'), 'processing_hold', ['document_id'])
    op.create_index(op.f('ix_processing_hold_owner_id'), 'processing_hold', ['owner_id'])

    op.create_table(
        'document_chunk',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('document_id', sa.String(36), sa.ForeignKey('document.id', ondelete='CASCADE'), nullable=False),
        sa.Column('chunk_order', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('embedding', Vector(EMBEDDING_DIM), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('document_id', 'chunk_order', name='uq_document_chunk_order'),
    )
    op.create_index(op.f('ix_document_chunk_document_id'), 'document_chunk', ['document_id'])
    op.execute(
        "CREATE INDEX ix_document_chunk_embedding ON document_chunk "
        "USING hnsw (embedding vector_cosine_ops)"
    )
    op.execute(
        "CREATE INDEX ix_document_chunk_content_fts ON document_chunk "
        "USING gin (to_tsvector('english', content))"
    )

    op.create_table(
        'chat_session',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('document_id', sa.String(36), sa.ForeignKey('document.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index(op.f('ix_chat_session_owner_id'), 'chat_session', ['owner_id'])
    op.create_index(op.f('ix_chat_session_document_id'), 'chat_session', ['document_id'])

    op.create_table(
        'chat_message',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('session_id', sa.String(36), sa.ForeignKey('chat_session.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', message_role, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('session_id', 'sequence_number', name='uq_chat_message_sequence'),
    )
    op.create_index(op.f('ix_chat_message_session_id'), 'chat_message', ['session_id'])
    op.create_index(op.f('ix_chat_message_created_at'), 'chat_message', ['created_at'])


def downgrade() -> None:
    op.drop_table('chat_message')
    op.drop_table('chat_session')
    op.execute("DROP INDEX IF EXISTS ix_document_chunk_content_fts")
    op.execute("DROP INDEX IF EXISTS ix_document_chunk_embedding")
    op.drop_table('document_chunk')
    op.drop_table('processing_hold')
    op.drop_index('uq_processing_job_active_stage', table_name='processing_job')
    op.drop_table('processing_job')
    op.drop_table('document')

    for name in ('messagerole', 'holdstatus', 'jobstatus', 'jobstage', 'documentstatus'):
        op.execute(f"DROP TYPE IF EXISTS {name}")
