# models.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from utils import utcnow, isoformat_utc

db = SQLAlchemy()


class Owner(UserMixin, db.Model):
    """A practitioner who sends intake forms to clients."""
    __tablename__ = 'owners'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    business_name = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    @property
    def display_name(self):
        return self.business_name or self.email

    def __repr__(self):
        return f'<Owner {self.email}>'


class FormTemplate(db.Model):
    """
    Declarative form definition.

    field_schema holds the validation tree (see services.validation), ui_schema
    an optional map of presentation hints. Editing bumps version; deleting
    clears is_active.
    """
    __tablename__ = 'form_templates'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text)
    field_schema = db.Column(db.JSON, nullable=False)
    ui_schema = db.Column(db.JSON)
    version = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self, include_schema=True):
        data = {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'version': self.version,
            'isActive': self.is_active,
        }
        if include_schema:
            data['schema'] = self.field_schema
            data['uiSchema'] = self.ui_schema
        return data

    def __repr__(self):
        return f'<FormTemplate {self.slug} v{self.version}>'


class FormInstance(db.Model):
    """A single tokenized invitation for one client to fill one template."""
    __tablename__ = 'form_instances'

    # Stored statuses. EXPIRED is derived, never written.
    SENT = 'SENT'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    EXPIRED = 'EXPIRED'

    STATUSES = (SENT, IN_PROGRESS, COMPLETED)

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(db.Integer, db.ForeignKey('form_templates.id', ondelete='RESTRICT'), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('owners.id', ondelete='RESTRICT'), nullable=False)
    client_email = db.Column(db.String(255), nullable=False)
    secure_token = db.Column(db.String(128), unique=True, nullable=False, index=True)
    personal_message = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=SENT)

    # Schema as it was when the invitation was created
    schema_snapshot = db.Column(db.JSON, nullable=False)
    template_version = db.Column(db.Integer, nullable=False, default=1)

    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    opened_at = db.Column(db.DateTime)
    submitted_at = db.Column(db.DateTime)

    template = db.relationship('FormTemplate', backref=db.backref('instances', lazy='dynamic'))
    owner = db.relationship('Owner', backref=db.backref('form_instances', lazy='dynamic'))
    response = db.relationship('FormResponse', uselist=False, back_populates='instance')

    __table_args__ = (
        db.CheckConstraint('expires_at > created_at', name='ck_form_instances_expiry_after_creation'),
        db.Index('ix_form_instances_status_expires_at', 'status', 'expires_at'),
        db.Index('ix_form_instances_owner_created_at', 'owner_id', 'created_at'),
    )

    @property
    def is_completed(self):
        return self.status == self.COMPLETED

    def is_expired(self, now=None):
        """Expired means past expires_at while not completed."""
        now = now or utcnow()
        return not self.is_completed and now > self.expires_at

    def effective_status(self, now=None):
        """Stored status, or EXPIRED when the deadline has passed."""
        if self.is_expired(now):
            return self.EXPIRED
        return self.status

    def to_dict(self, now=None):
        return {
            'id': self.id,
            'templateId': self.template_id,
            'templateVersion': self.template_version,
            'ownerId': self.owner_id,
            'clientEmail': self.client_email,
            'secureToken': self.secure_token,
            'personalMessage': self.personal_message,
            'status': self.status,
            'effectiveStatus': self.effective_status(now),
            'expiresAt': isoformat_utc(self.expires_at),
            'createdAt': isoformat_utc(self.created_at),
            'openedAt': isoformat_utc(self.opened_at),
            'submittedAt': isoformat_utc(self.submitted_at),
        }

    def __repr__(self):
        return f'<FormInstance {self.id} {self.status}>'


class FormResponse(db.Model):
    """Client answers for an instance. Created lazily on first write."""
    __tablename__ = 'form_responses'

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(db.Integer, db.ForeignKey('form_instances.id', ondelete='RESTRICT'),
                            unique=True, nullable=False, index=True)
    draft_data = db.Column(db.JSON)
    submitted_data = db.Column(db.JSON)
    submission_id = db.Column(db.String(40), unique=True, index=True)
    last_saved_at = db.Column(db.DateTime)
    submitted_at = db.Column(db.DateTime)
    submission_ip = db.Column(db.String(45))
    submission_user_agent = db.Column(db.String(500))

    instance = db.relationship('FormInstance', back_populates='response')

    def __repr__(self):
        return f'<FormResponse instance={self.instance_id}>'


class AuditLog(db.Model):
    """Append-only audit trail keyed by (entity_type, entity_id)."""
    __tablename__ = 'audit_logs'

    # Entity types
    FORM_INSTANCE = 'FormInstance'
    FORM_RESPONSE = 'FormResponse'
    FORM_TEMPLATE = 'FormTemplate'

    # Actor types
    OWNER = 'OWNER'
    CLIENT = 'CLIENT'
    SYSTEM = 'SYSTEM'

    # Actions
    CREATED = 'created'
    ACCESSED = 'accessed'
    AUTO_SAVE = 'AUTO_SAVE'
    DRAFT_CLEARED = 'draft_cleared'
    SUBMITTED = 'submitted'
    EMAIL_SENT = 'email_sent'
    EMAIL_FAILED = 'email_failed'
    TEMPLATE_CREATED = 'template_created'
    TEMPLATE_UPDATED = 'template_updated'
    TEMPLATE_DEACTIVATED = 'template_deactivated'

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(50), nullable=False)
    actor_type = db.Column(db.String(20), nullable=False)
    actor_id = db.Column(db.String(255))
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    # 'metadata' is reserved on declarative models
    event_metadata = db.Column('metadata', db.JSON)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        db.Index('ix_audit_logs_entity', 'entity_type', 'entity_id'),
    )

    def __repr__(self):
        return f'<AuditLog {self.entity_type}:{self.entity_id} {self.action}>'
