"""add_wearable_analytics_tables

Revision ID: 5f3c1a9e2b7d
Revises:
Create Date: 2026-10-18 10:12:31.482117

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '5f3c1a9e2b7d'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # 用户
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('nickname', sa.String(100), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # 偏头痛档案
    op.create_table('user_profiles',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('diagnosed_type', sa.String(100), nullable=True, comment='诊断类型'),
        sa.Column('monthly_frequency', sa.Integer(), nullable=True, comment='每月发作次数'),
        sa.Column('typical_duration', sa.Integer(), nullable=True, comment='典型持续天数'),
        sa.Column('experiences_nausea', sa.Boolean(), nullable=True, comment='恶心'),
        sa.Column('experiences_vomit', sa.Boolean(), nullable=True, comment='呕吐'),
        sa.Column('experiences_photophobia', sa.Boolean(), nullable=True, comment='畏光'),
        sa.Column('experiences_phonophobia', sa.Boolean(), nullable=True, comment='畏声'),
        sa.Column('typical_visual_symptoms', sa.Boolean(), nullable=True, comment='视觉先兆'),
        sa.Column('typical_sensory_symptoms', sa.Boolean(), nullable=True, comment='感觉先兆'),
        sa.Column('family_history', sa.Boolean(), nullable=True, comment='家族史'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    # 上传会话
    op.create_table('upload_sessions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('filename', sa.String(255), nullable=False, comment='原始文件名'),
        sa.Column('file_size', sa.Integer(), nullable=True, comment='文件大小(字节)'),
        sa.Column('source', sa.String(50), nullable=True, comment='数据来源'),
        sa.Column('total_rows', sa.Integer(), nullable=True),
        sa.Column('inserted_rows', sa.Integer(), nullable=True),
        sa.Column('updated_rows', sa.Integer(), nullable=True),
        sa.Column('skipped_rows', sa.Integer(), nullable=True),
        sa.Column('error_rows', sa.Integer(), nullable=True),
        sa.Column('field_mapping', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='表头 -> 标准字段'),
        sa.Column('unrecognized_fields', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='未识别表头'),
        sa.Column('error_details', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='错误明细(截断)'),
        sa.Column('earliest_timestamp', sa.TIMESTAMP(timezone=True), nullable=True, comment='最早数据时间'),
        sa.Column('status', sa.String(20), nullable=True, comment='处理状态'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_upload_sessions_user_id', 'upload_sessions', ['user_id'], unique=False)

    # 每小时可穿戴数据
    op.create_table('wearable_data',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('upload_session_id', sa.UUID(), nullable=True),
        sa.Column('timestamp', sa.TIMESTAMP(timezone=True), nullable=False, comment='采样时间(UTC)'),
        sa.Column('stress_value', sa.Float(), nullable=True, comment='压力'),
        sa.Column('recovery_value', sa.Float(), nullable=True, comment='恢复'),
        sa.Column('heart_rate', sa.Float(), nullable=True, comment='心率(bpm)'),
        sa.Column('hrv', sa.Float(), nullable=True, comment='心率变异性(ms)'),
        sa.Column('sleep_efficiency', sa.Float(), nullable=True, comment='睡眠效率(%)'),
        sa.Column('sleep_heart_rate', sa.Float(), nullable=True, comment='睡眠心率(bpm)'),
        sa.Column('skin_temperature', sa.Float(), nullable=True, comment='皮肤温度'),
        sa.Column('restless_periods', sa.Float(), nullable=True, comment='不安稳次数'),
        sa.Column('additional_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='未识别列'),
        sa.Column('source', sa.String(50), nullable=True, comment='数据来源'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['upload_session_id'], ['upload_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'timestamp', name='uq_wearable_user_timestamp'),
    )
    op.create_index('idx_wearable_user_timestamp', 'wearable_data', ['user_id', 'timestamp'], unique=False)
    op.create_index('ix_wearable_data_upload_session_id', 'wearable_data', ['upload_session_id'], unique=False)

    # 偏头痛日标记
    op.create_table('migraine_day_markers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False, comment='本地日期'),
        sa.Column('is_migraine_day', sa.Boolean(), nullable=True, comment='是否偏头痛日'),
        sa.Column('severity', sa.Integer(), nullable=True, comment='严重程度(1-10)'),
        sa.Column('notes', sa.Text(), nullable=True, comment='备注'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'date', name='uq_marker_user_date'),
    )

    # 每日汇总指标
    op.create_table('summary_indicators',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('period_start', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('period_end', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('avg_stress', sa.Float(), nullable=True),
        sa.Column('max_stress', sa.Float(), nullable=True),
        sa.Column('stress_volatility', sa.Float(), nullable=True, comment='总体标准差'),
        sa.Column('stress_trend', sa.String(20), nullable=True),
        sa.Column('avg_recovery', sa.Float(), nullable=True),
        sa.Column('min_recovery', sa.Float(), nullable=True),
        sa.Column('recovery_trend', sa.String(20), nullable=True),
        sa.Column('avg_heart_rate', sa.Float(), nullable=True),
        sa.Column('resting_heart_rate', sa.Float(), nullable=True, comment='当日最低心率'),
        sa.Column('max_heart_rate', sa.Float(), nullable=True),
        sa.Column('avg_hrv', sa.Float(), nullable=True),
        sa.Column('hrv_trend', sa.String(20), nullable=True),
        sa.Column('hrv_volatility', sa.Float(), nullable=True),
        sa.Column('avg_sleep_efficiency', sa.Float(), nullable=True),
        sa.Column('avg_sleep_heart_rate', sa.Float(), nullable=True),
        sa.Column('avg_restless_periods', sa.Float(), nullable=True),
        sa.Column('avg_skin_temperature', sa.Float(), nullable=True),
        sa.Column('temperature_variation', sa.Float(), nullable=True, comment='最高-最低'),
        sa.Column('overall_wellness_score', sa.Float(), nullable=True, comment='综合健康分(0-100)'),
        sa.Column('risk_factors', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='风险标签'),
        sa.Column('data_points_count', sa.Integer(), nullable=True),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'period_start', 'period_end', name='uq_summary_user_period'),
    )
    op.create_index('idx_summary_user_period_end', 'summary_indicators', ['user_id', 'period_end'], unique=False)

    # 相关性模式
    op.create_table('migraine_correlations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('pattern_type', sa.String(50), nullable=False, comment='模式类型'),
        sa.Column('pattern_name', sa.String(100), nullable=False, comment='模式名称'),
        sa.Column('pattern_definition', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('correlation_strength', sa.Float(), nullable=True, comment='相关强度 [-1, 1]'),
        sa.Column('confidence_score', sa.Float(), nullable=True, comment='置信度 [0.1, 0.95]'),
        sa.Column('migraine_days_count', sa.Integer(), nullable=True),
        sa.Column('total_days_analyzed', sa.Integer(), nullable=True),
        sa.Column('avg_value_on_migraine_days', sa.Float(), nullable=True),
        sa.Column('avg_value_on_normal_days', sa.Float(), nullable=True),
        sa.Column('threshold_value', sa.Float(), nullable=True),
        sa.Column('first_detected_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'pattern_type', name='uq_correlation_user_pattern'),
    )


def downgrade() -> None:
    op.drop_table('migraine_correlations')
    op.drop_index('idx_summary_user_period_end', table_name='summary_indicators')
    op.drop_table('summary_indicators')
    op.drop_table('migraine_day_markers')
    op.drop_index('ix_wearable_data_upload_session_id', table_name='wearable_data')
    op.drop_index('idx_wearable_user_timestamp', table_name='wearable_data')
    op.drop_table('wearable_data')
    op.drop_index('ix_upload_sessions_user_id', table_name='upload_sessions')
    op.drop_table('upload_sessions')
    op.drop_table('user_profiles')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
