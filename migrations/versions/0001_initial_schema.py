"""Initial schema — lookups, users, cases, history, comments, notifications.

Revision ID: 0001
Revises:     (none)
Create Date: 2026-10-18
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op


def upgrade() -> None:
    # ---------------------------------------------------------------------- #
    # ENUM-like CHECK constraints are expressed as VARCHAR + CHECK            #
    # so that values can be added without a schema migration.                  #
    # ---------------------------------------------------------------------- #

    # ------------------------------------------------------------------ #
    # Lookup tables                                                        #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE case_categories (
            id          INT          GENERATED BY DEFAULT AS IDENTITY,
            name        VARCHAR(100) NOT NULL,
            description TEXT,
            sort_order  INT          NOT NULL DEFAULT 0,
            is_active   BOOLEAN      NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMP    NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_case_categories PRIMARY KEY (id),
            CONSTRAINT uq_case_categories_name UNIQUE (name)
        )
    """)

    op.execute("""
        CREATE TABLE case_priorities (
            id                    INT         GENERATED BY DEFAULT AS IDENTITY,
            name                  VARCHAR(50) NOT NULL,
            description           TEXT,
            level                 SMALLINT    NOT NULL,   -- 1 = most urgent
            response_time_hours   INT,
            resolution_time_hours INT,
            is_active             BOOLEAN     NOT NULL DEFAULT TRUE,
            created_at            TIMESTAMP   NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_case_priorities PRIMARY KEY (id),
            CONSTRAINT uq_case_priorities_name UNIQUE (name),
            CONSTRAINT chk_case_priorities_level CHECK (level BETWEEN 1 AND 5)
        )
    """)

    op.execute("""
        CREATE TABLE case_statuses (
            id          INT         GENERATED BY DEFAULT AS IDENTITY,
            name        VARCHAR(50) NOT NULL,
            description TEXT,
            sort_order  INT         NOT NULL DEFAULT 0,
            is_initial  BOOLEAN     NOT NULL DEFAULT FALSE,
            is_final    BOOLEAN     NOT NULL DEFAULT FALSE,
            is_active   BOOLEAN     NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMP   NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_case_statuses PRIMARY KEY (id),
            CONSTRAINT uq_case_statuses_name UNIQUE (name)
        )
    """)

    op.execute("""
        CREATE TABLE case_channels (
            id          INT          GENERATED BY DEFAULT AS IDENTITY,
            name        VARCHAR(100) NOT NULL,
            description TEXT,
            sort_order  INT          NOT NULL DEFAULT 0,
            is_active   BOOLEAN      NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMP    NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_case_channels PRIMARY KEY (id),
            CONSTRAINT uq_case_channels_name UNIQUE (name)
        )
    """)

    # ------------------------------------------------------------------ #
    # users  (directory, read-only for the case engine)                    #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE users (
            id         INT          GENERATED BY DEFAULT AS IDENTITY,
            username   VARCHAR(100) NOT NULL,
            first_name VARCHAR(100),
            last_name  VARCHAR(100),
            email      VARCHAR(200),
            role       VARCHAR(20)  NOT NULL,
            is_active  BOOLEAN      NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP    NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_users PRIMARY KEY (id),
            CONSTRAINT uq_users_username UNIQUE (username),
            CONSTRAINT chk_users_role CHECK (
                role IN ('USER', 'STAFF', 'MANAGER', 'ADMIN', 'SUPER_ADMIN')
            )
        )
    """)

    # ------------------------------------------------------------------ #
    # cases                                                                #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE cases (
            id                                    INT           GENERATED BY DEFAULT AS IDENTITY,
            case_number                           VARCHAR(20)   NOT NULL,   -- CS-YYYYMMDD-NNNN
            title                                 VARCHAR(255)  NOT NULL,
            description                           TEXT          NOT NULL,
            case_date                             TIMESTAMP     NOT NULL,
            due_date                              TIMESTAMP,
            resolved_date                         TIMESTAMP,

            category_id                           INT           NOT NULL,
            priority_id                           INT           NOT NULL,
            status_id                             INT           NOT NULL,
            channel_id                            INT           NOT NULL,

            impact_description                    TEXT,
            urgency_level                         VARCHAR(20),
            affected_beneficiaries                INT,

            program_id                            INT,
            project_id                            INT,
            activity_id                           INT,
            is_project_related                    BOOLEAN       NOT NULL DEFAULT FALSE,

            provider_type_id                      INT,
            individual_provider_gender            VARCHAR(20),
            individual_provider_age_group         VARCHAR(20),
            individual_provider_disability_status VARCHAR(20),
            group_provider_size                   INT,
            group_provider_gender_composition     VARCHAR(100),
            provider_name                         VARCHAR(200),
            provider_email                        VARCHAR(200),
            provider_phone                        VARCHAR(50),
            provider_organization                 VARCHAR(200),
            provider_address                      TEXT,

            data_sharing_consent                  BOOLEAN       NOT NULL DEFAULT FALSE,
            follow_up_consent                     BOOLEAN       NOT NULL DEFAULT FALSE,
            follow_up_contact_method              VARCHAR(20),
            privacy_policy_accepted               BOOLEAN       NOT NULL DEFAULT FALSE,
            is_sensitive                          BOOLEAN       NOT NULL DEFAULT FALSE,
            is_anonymized                         BOOLEAN       NOT NULL DEFAULT FALSE,
            is_public                             BOOLEAN       NOT NULL DEFAULT FALSE,
            confidentiality_level                 VARCHAR(20)   NOT NULL DEFAULT 'internal',

            community_id                          INT,
            location                              VARCHAR(500),
            coordinates                           VARCHAR(100),
            gps_lat                               DECIMAL(10,7),
            gps_lng                               DECIMAL(10,7),

            assigned_to                           INT,
            assigned_by                           INT,
            assigned_at                           TIMESTAMP,
            assignment_comments                   TEXT,

            submitted_by                          INT,
            submitted_at                          TIMESTAMP,
            submitted_by_initials                 VARCHAR(10),
            submitted_by_confirmation             BOOLEAN       NOT NULL DEFAULT FALSE,
            submitted_by_comments                 TEXT,

            first_response_date                   TIMESTAMP,
            last_activity_date                    TIMESTAMP,
            escalation_level                      SMALLINT      NOT NULL DEFAULT 0,
            escalated_at                          TIMESTAMP,
            escalated_by                          INT,
            escalation_reason                     TEXT,

            resolution_summary                    TEXT,
            resolution_category                   VARCHAR(30),
            resolution_satisfaction               VARCHAR(30),

            follow_up_required                    BOOLEAN       NOT NULL DEFAULT FALSE,
            follow_up_date                        TIMESTAMP,
            monitoring_required                   BOOLEAN       NOT NULL DEFAULT FALSE,
            monitoring_date                       TIMESTAMP,

            quality_reviewed                      BOOLEAN       NOT NULL DEFAULT FALSE,
            quality_reviewed_by                   INT,
            quality_reviewed_at                   TIMESTAMP,
            quality_score                         SMALLINT,
            quality_comments                      TEXT,

            tags                                  VARCHAR(500),
            attachments                           TEXT,
            external_references                   TEXT,

            created_at                            TIMESTAMP     NOT NULL DEFAULT NOW(),
            created_by                            INT,
            updated_at                            TIMESTAMP     NOT NULL DEFAULT NOW(),
            updated_by                            INT,
            is_active                             BOOLEAN       NOT NULL DEFAULT TRUE,
            is_deleted                            BOOLEAN       NOT NULL DEFAULT FALSE,
            deleted_at                            TIMESTAMP,
            deleted_by                            INT,

            CONSTRAINT pk_cases PRIMARY KEY (id),
            CONSTRAINT uq_cases_case_number UNIQUE (case_number),
            CONSTRAINT fk_cases_category FOREIGN KEY (category_id)
                REFERENCES case_categories (id),
            CONSTRAINT fk_cases_priority FOREIGN KEY (priority_id)
                REFERENCES case_priorities (id),
            CONSTRAINT fk_cases_status FOREIGN KEY (status_id)
                REFERENCES case_statuses (id),
            CONSTRAINT fk_cases_channel FOREIGN KEY (channel_id)
                REFERENCES case_channels (id),
            CONSTRAINT fk_cases_assigned_to FOREIGN KEY (assigned_to)
                REFERENCES users (id) ON DELETE SET NULL,
            CONSTRAINT fk_cases_submitted_by FOREIGN KEY (submitted_by)
                REFERENCES users (id) ON DELETE SET NULL,
            CONSTRAINT chk_cases_urgency CHECK (
                urgency_level IS NULL
                OR urgency_level IN ('low', 'medium', 'high', 'critical')
            ),
            CONSTRAINT chk_cases_confidentiality CHECK (
                confidentiality_level IN ('public', 'internal', 'restricted', 'confidential')
            ),
            CONSTRAINT chk_cases_contact_method CHECK (
                follow_up_contact_method IS NULL
                OR follow_up_contact_method IN ('email', 'phone', 'in_person', 'sms', 'none')
            ),
            CONSTRAINT chk_cases_resolution_category CHECK (
                resolution_category IS NULL
                OR resolution_category IN (
                    'resolved', 'closed_no_action', 'referred', 'duplicate', 'withdrawn'
                )
            ),
            CONSTRAINT chk_cases_satisfaction CHECK (
                resolution_satisfaction IS NULL
                OR resolution_satisfaction IN (
                    'very_satisfied', 'satisfied', 'neutral', 'dissatisfied', 'very_dissatisfied'
                )
            ),
            CONSTRAINT chk_cases_gps CHECK (
                (gps_lat IS NULL OR gps_lat BETWEEN -90 AND 90)
                AND (gps_lng IS NULL OR gps_lng BETWEEN -180 AND 180)
            ),
            CONSTRAINT chk_cases_escalation_level CHECK (escalation_level >= 0),
            CONSTRAINT chk_cases_quality_score CHECK (
                quality_score IS NULL OR quality_score BETWEEN 0 AND 5
            )
        )
    """)

    # ------------------------------------------------------------------ #
    # case_history  (append-only)                                          #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE case_history (
            id                  INT          GENERATED BY DEFAULT AS IDENTITY,
            case_id             INT          NOT NULL,
            action_type         VARCHAR(30)  NOT NULL,
            field_name          VARCHAR(500),
            old_value           TEXT,
            new_value           TEXT,
            change_description  TEXT,
            comments            TEXT,
            assigned_to         INT,
            assigned_by         INT,
            assignment_comments TEXT,
            status_id           INT,
            status_reason       TEXT,
            created_at          TIMESTAMP    NOT NULL DEFAULT NOW(),
            created_by          INT,
            is_active           BOOLEAN      NOT NULL DEFAULT TRUE,
            CONSTRAINT pk_case_history PRIMARY KEY (id),
            CONSTRAINT fk_case_history_case FOREIGN KEY (case_id)
                REFERENCES cases (id) ON DELETE CASCADE,
            CONSTRAINT chk_case_history_action CHECK (
                action_type IN (
                    'CREATION', 'STATUS_CHANGE', 'ASSIGNMENT_CHANGE', 'PRIORITY_CHANGE',
                    'CATEGORY_CHANGE', 'ESCALATION', 'RESOLUTION', 'COMMENT_ADDED', 'UPDATE'
                )
            )
        )
    """)

    # ------------------------------------------------------------------ #
    # case_comments                                                        #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE case_comments (
            id                     INT          GENERATED BY DEFAULT AS IDENTITY,
            case_id                INT          NOT NULL,
            comment                TEXT         NOT NULL,
            comment_type           VARCHAR(20)  NOT NULL DEFAULT 'internal',
            is_internal            BOOLEAN      NOT NULL DEFAULT TRUE,
            is_public              BOOLEAN      NOT NULL DEFAULT FALSE,
            confidentiality_level  VARCHAR(20)  NOT NULL DEFAULT 'internal',
            mentioned_users        JSONB,
            tags                   VARCHAR(500),
            parent_comment_id      INT,
            is_response            BOOLEAN      NOT NULL DEFAULT FALSE,
            requires_follow_up     BOOLEAN      NOT NULL DEFAULT FALSE,
            follow_up_date         TIMESTAMP,
            follow_up_completed    BOOLEAN      NOT NULL DEFAULT FALSE,
            follow_up_completed_at TIMESTAMP,
            follow_up_completed_by INT,
            is_edited              BOOLEAN      NOT NULL DEFAULT FALSE,
            edited_at              TIMESTAMP,
            edited_by              INT,
            edit_reason            TEXT,
            original_comment       TEXT,
            created_at             TIMESTAMP    NOT NULL DEFAULT NOW(),
            created_by             INT          NOT NULL,
            updated_at             TIMESTAMP    NOT NULL DEFAULT NOW(),
            updated_by             INT,
            is_active              BOOLEAN      NOT NULL DEFAULT TRUE,
            is_deleted             BOOLEAN      NOT NULL DEFAULT FALSE,
            deleted_at             TIMESTAMP,
            deleted_by             INT,
            CONSTRAINT pk_case_comments PRIMARY KEY (id),
            CONSTRAINT fk_case_comments_case FOREIGN KEY (case_id)
                REFERENCES cases (id) ON DELETE CASCADE,
            CONSTRAINT fk_case_comments_parent FOREIGN KEY (parent_comment_id)
                REFERENCES case_comments (id) ON DELETE SET NULL,
            CONSTRAINT chk_case_comments_type CHECK (
                comment_type IN (
                    'internal', 'external', 'resolution', 'escalation',
                    'follow_up', 'status_update', 'assignment'
                )
            ),
            CONSTRAINT chk_case_comments_confidentiality CHECK (
                confidentiality_level IN ('public', 'internal', 'restricted', 'confidential')
            )
        )
    """)

    # ------------------------------------------------------------------ #
    # notifications                                                        #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE notifications (
            id              INT          GENERATED BY DEFAULT AS IDENTITY,
            user_id         INT          NOT NULL,
            case_id         INT,
            entity_type     VARCHAR(20),
            entity_id       INT,
            type            VARCHAR(50)  NOT NULL,
            title           VARCHAR(255) NOT NULL,
            message         TEXT,
            priority        VARCHAR(10)  NOT NULL DEFAULT 'normal',
            action_url      VARCHAR(500),
            action_text     VARCHAR(100),
            is_read         BOOLEAN      NOT NULL DEFAULT FALSE,
            read_at         TIMESTAMP,
            is_email_sent   BOOLEAN      NOT NULL DEFAULT FALSE,
            email_sent_at   TIMESTAMP,
            email_error     TEXT,
            email_attempts  SMALLINT     NOT NULL DEFAULT 0,
            is_push_sent    BOOLEAN      NOT NULL DEFAULT FALSE,
            push_sent_at    TIMESTAMP,
            push_error      TEXT,
            push_attempts   SMALLINT     NOT NULL DEFAULT 0,
            metadata        JSONB,
            trigger_user_id INT,
            trigger_action  VARCHAR(50),
            expires_at      TIMESTAMP,
            created_at      TIMESTAMP    NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMP    NOT NULL DEFAULT NOW(),
            is_active       BOOLEAN      NOT NULL DEFAULT TRUE,
            CONSTRAINT pk_notifications PRIMARY KEY (id),
            CONSTRAINT fk_notifications_user FOREIGN KEY (user_id)
                REFERENCES users (id) ON DELETE CASCADE,
            CONSTRAINT fk_notifications_case FOREIGN KEY (case_id)
                REFERENCES cases (id) ON DELETE SET NULL,
            CONSTRAINT chk_notifications_type CHECK (
                type IN (
                    'case_assigned', 'case_status_changed', 'escalation', 'comment_added',
                    'case_resolved', 'assignment_transferred', 'generic'
                )
            ),
            CONSTRAINT chk_notifications_priority CHECK (
                priority IN ('urgent', 'high', 'normal', 'low')
            )
        )
    """)

    # ------------------------------------------------------------------ #
    # Indexes                                                              #
    # ------------------------------------------------------------------ #

    # cases — filter / sort columns
    op.execute("CREATE INDEX idx_cases_status ON cases (status_id)")
    op.execute("CREATE INDEX idx_cases_priority ON cases (priority_id)")
    op.execute("CREATE INDEX idx_cases_category ON cases (category_id)")
    op.execute("CREATE INDEX idx_cases_assigned_to ON cases (assigned_to)")
    op.execute("CREATE INDEX idx_cases_submitted_by ON cases (submitted_by)")
    op.execute("CREATE INDEX idx_cases_created_at ON cases (created_at)")
    op.execute("CREATE INDEX idx_cases_active ON cases (is_deleted, created_at)")

    # case_history
    op.execute("CREATE INDEX idx_case_history_case ON case_history (case_id, created_at)")
    op.execute("CREATE INDEX idx_case_history_action ON case_history (action_type)")

    # case_comments
    op.execute("CREATE INDEX idx_case_comments_case ON case_comments (case_id, created_at)")
    op.execute("""
        CREATE INDEX idx_case_comments_follow_up
        ON case_comments (follow_up_date)
        WHERE requires_follow_up AND NOT follow_up_completed AND NOT is_deleted
    """)

    # notifications — unread lookups
    op.execute("CREATE INDEX idx_notifications_user ON notifications (user_id, is_read)")
    op.execute("CREATE INDEX idx_notifications_case ON notifications (case_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS case_comments CASCADE")
    op.execute("DROP TABLE IF EXISTS case_history CASCADE")
    op.execute("DROP TABLE IF EXISTS cases CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
    op.execute("DROP TABLE IF EXISTS case_channels CASCADE")
    op.execute("DROP TABLE IF EXISTS case_statuses CASCADE")
    op.execute("DROP TABLE IF EXISTS case_priorities CASCADE")
    op.execute("DROP TABLE IF EXISTS case_categories CASCADE")
